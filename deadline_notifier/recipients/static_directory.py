"""Built-in department address table, used when the directory has no match."""

from typing import Dict

DEFAULT_STATIC_DIRECTORY: Dict[str, str] = {
    "FUNDEC – Fundação de Apoio à Escola Técnica, Tecnologia, Esporte, Lazer, Cultura e Políticas Sociais de Duque de Caxias": "educacao@fundec.rj.gov.br",
    "IPMDC – Instituto de Previdência dos Servidores Públicos do Município de Duque de Caxias": "faleconosco@ipmdc.com.br",
    "Ouvidoria Geral do Município": "ouvidoria@duquedecaxias.rj.gov.br",
    "Procuradoria-Geral do Município (PGM)": "gabineteadm.pgmdc@gmail.com",
    "Secretaria Municipal de Administração, Planejamento e Orçamento": "sma@duquedecaxias.rj.gov.br",
    "Secretaria Municipal de Assistência Social e Direitos Humanos": "ouvidoria.smasdh@duquedecaxias.rj.gov.br",
    "Secretaria Municipal de Articulação Institucional": "pregaoduquedecaxias@gmail.com",
    "Secretaria Municipal de Comunicação Social e Relações Públicas": "imprensa@duquedecaxias.rj.gov.br",
    "Secretaria Municipal de Cultura e Turismo": "adm.smct@gmail.com",
    "Secretaria Municipal de Defesa Civil": "sesdec.dc@gmail.com",
    "Secretaria Municipal de Educação": "ouvidoriasme@smeduquedecaxias.rj.gov.br",
    "Secretaria Municipal de Esporte e Lazer": "smel@duquedecaxias.rj.gov.br",
    "Secretaria Municipal de Eventos": "semev.gabinete@duquedecaxias.rj.gov.br",
    "Secretaria Municipal de Fazenda": "anistiafiscal@duquedecaxias.rj.gov.br",
    "Secretaria Municipal de Gestão e Inclusão e Mulher": "smddti@duquedecaxias.rj.gov.br",
    "Secretaria Municipal de Governo": "segov@duquedecaxias.rj.gov.br",
    "Secretaria Municipal de Meio Ambiente": "ostmeioambientedc@gmail.com",
    "Secretaria Municipal de Obras e Agricultura": "obraspmdc@gmail.com",
    "Secretaria Municipal de Procuradoria Geral": "gabineteadm.pgmdc@gmail.com",
    "Secretaria Municipal de Proteção Animal": "comunicacao.smpadc@gmail.com",
    "Secretaria Municipal de Saúde": "smsdc@duquedecaxias.rj.gov.br",
    "Secretaria Municipal de Segurança Pública": "gabinete.smsp@gmail.com",
    "Secretaria Municipal de Trabalho, Emprego e Renda": "smter.gabinete@duquedecaxias.rj.gov.br",
    "Secretaria Municipal de Transportes e Serviços Públicos": "smtsp@duquedecaxias.rj.gov.br",
    "Secretaria Municipal de Urbanismo e Habitação": "semuh.pmdc@gmail.com",
}
