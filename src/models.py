from pydantic import BaseModel, Field
from typing import List


class AchadoSST(BaseModel):
    descricao: str = Field(description="Descrição objetiva do risco de segurança identificado na foto (ex: 'Cabeamento exposto em área de circulação').")
    nivel_risco: str = Field(description="Nível de risco: deve ser 'Alto', 'Médio' ou 'Baixo'.")
    acao_corretiva: str = Field(description="Ação corretiva imediata para eliminar ou controlar o risco.")
    acao_preventiva: str = Field(description="Ação preventiva para evitar que o risco volte a ocorrer.")


class AnaliseFotoSST(BaseModel):
    achados: List[AchadoSST] = Field(description="Lista de riscos identificados na foto. Lista vazia se nenhum risco for visível.")
