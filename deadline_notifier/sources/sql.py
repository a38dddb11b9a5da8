"""SQLAlchemy-backed case source and department directory.

Both tables belong to the ingestion side of the system; this module only
reads them. They live on their own declarative base so ledger schema
creation never touches them.
"""

import json
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, Column, Integer, String, Text, func, or_, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from ..domain.models import CaseSnapshot, DirectoryEntry
from ..logging import get_logger
from .base import CaseSource, DepartmentDirectory
from .exceptions import SourceError

logger = get_logger(__name__, component="sources")

SourceBase = declarative_base()


class CaseRecordModel(SourceBase):
    """ORM view of the ingested case records table."""

    __tablename__ = "records"

    id = Column(Integer, primary_key=True)
    protocolo = Column(String(64), nullable=True)
    data_criacao_iso = Column(String(40), nullable=True)
    data_da_criacao = Column(String(40), nullable=True)
    data_conclusao_iso = Column(String(40), nullable=True)
    data_da_conclusao = Column(String(40), nullable=True)
    tipo_de_manifestacao = Column(String(255), nullable=True)
    orgaos = Column(String(255), nullable=True)
    status = Column(String(255), nullable=True)
    status_demanda = Column(String(255), nullable=True)
    assunto = Column(Text, nullable=True)
    data = Column(JSON, nullable=True)

    def to_domain(self) -> CaseSnapshot:
        return CaseSnapshot(
            protocol=self.protocolo,
            creation_date_iso=self.data_criacao_iso,
            creation_date=self.data_da_criacao,
            completion_date_iso=self.data_conclusao_iso,
            completion_date=self.data_da_conclusao,
            manifestation_type=self.tipo_de_manifestacao,
            department=self.orgaos,
            status=self.status,
            status_demand=self.status_demanda,
            subject=self.assunto,
            payload=_as_mapping(self.data),
        )


class DepartmentInfoModel(SourceBase):
    """ORM view of the department contact table."""

    __tablename__ = "secretarias_info"

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    email = Column(Text, nullable=True)
    alternate_email = Column(Text, nullable=True)

    def to_domain(self) -> DirectoryEntry:
        return DirectoryEntry(
            name=self.name, email=self.email, alternate_email=self.alternate_email
        )


def _as_mapping(value: Any) -> Dict[str, Any]:
    """The payload column may hold a dict or a JSON string."""
    if isinstance(value, dict):
        return value
    if isinstance(value, str) and value.strip():
        try:
            decoded = json.loads(value)
        except ValueError:
            return {}
        return decoded if isinstance(decoded, dict) else {}
    return {}


def _has_address():
    return or_(
        func.trim(func.coalesce(DepartmentInfoModel.email, "")) != "",
        func.trim(func.coalesce(DepartmentInfoModel.alternate_email, "")) != "",
    )


class _ReadOnlyStore:
    def __init__(self, engine: Engine):
        self._session_factory = sessionmaker(bind=engine, future=True)

    def _session(self) -> Session:
        return self._session_factory()


class SqlCaseSource(_ReadOnlyStore, CaseSource):
    """Reads cases from the ``records`` table."""

    def fetch_cases(self) -> List[CaseSnapshot]:
        try:
            with self._session() as session:
                models = session.execute(select(CaseRecordModel)).scalars().all()
                cases = [model.to_domain() for model in models]
        except SQLAlchemyError as e:
            logger.error(
                f"Failed to read cases: {e}",
                exc_info=True,
                extra={"event": "sources.cases_failed"},
            )
            raise SourceError(f"Failed to read cases: {e}", source="cases") from e

        logger.debug(
            "Cases loaded",
            extra={"event": "sources.cases_loaded", "case_count": len(cases)},
        )
        return cases


class SqlDepartmentDirectory(_ReadOnlyStore, DepartmentDirectory):
    """Reads department contacts from the ``secretarias_info`` table."""

    def find_exact(self, name: str) -> Optional[DirectoryEntry]:
        # Compared in Python: SQLite lower() only folds ASCII.
        target = name.strip().lower()
        for entry in self.list_with_addresses():
            if entry.name.strip().lower() == target:
                return entry
        return None

    def list_with_addresses(self) -> List[DirectoryEntry]:
        try:
            with self._session() as session:
                stmt = (
                    select(DepartmentInfoModel)
                    .where(_has_address())
                    .order_by(DepartmentInfoModel.id)
                )
                return [model.to_domain() for model in session.execute(stmt).scalars()]
        except SQLAlchemyError as e:
            raise SourceError(f"Directory scan failed: {e}", source="directory") from e
