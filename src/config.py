import os

DEFAULT_ANALYSIS_PROMPT = """
Você é um especialista em Segurança e Saúde no Trabalho (SST) realizando uma inspeção de campo.
Analise a FOTO enviada e identifique todos os riscos de segurança visíveis.

DIRETRIZES:
1. Liste apenas riscos reais e visíveis na imagem. Se não houver riscos, retorne a lista vazia.
2. NÍVEL DE RISCO: use exatamente "Alto", "Médio" ou "Baixo".
3. AÇÃO CORRETIVA: medida imediata para eliminar ou controlar o risco.
4. AÇÃO PREVENTIVA: medida para evitar que o risco volte a ocorrer.

Siga rigorosamente o JSON Schema fornecido.
"""


class Config:
    # Database
    DATABASE_URL = os.getenv("DATABASE_URL")

    # Google Cloud
    GCP_PROJECT_ID = os.getenv("GCP_PROJECT_ID")
    GCP_LOCATION = os.getenv("GCP_LOCATION")
    GCP_TASK_QUEUE = os.getenv("GCP_TASK_QUEUE", "analysis-worker-queue")
    GCP_SA_EMAIL = os.getenv("GCP_SA_EMAIL")
    APP_PUBLIC_URL = os.getenv("APP_PUBLIC_URL")

    # Storage (GCS se bucket definido, senão disco local)
    GCP_STORAGE_BUCKET = os.getenv("GCP_STORAGE_BUCKET")
    LOCAL_STORAGE_DIR = os.getenv("LOCAL_STORAGE_DIR", "uploads")

    # OpenAI
    OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
    OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
    AI_TIMEOUT_SECONDS = float(os.getenv("AI_TIMEOUT_SECONDS", "60"))

    # Orquestração da análise
    ANALYSIS_MAX_CONCURRENCY = int(os.getenv("ANALYSIS_MAX_CONCURRENCY", "3"))
    ANALYSIS_MAX_ATTEMPTS = int(os.getenv("ANALYSIS_MAX_ATTEMPTS", "3"))
    ANALYSIS_BACKOFF_SECONDS = float(os.getenv("ANALYSIS_BACKOFF_SECONDS", "1"))
    ANALYSIS_BACKOFF_MAX_SECONDS = float(os.getenv("ANALYSIS_BACKOFF_MAX_SECONDS", "30"))
    ANALYSIS_STALE_AFTER_SECONDS = int(os.getenv("ANALYSIS_STALE_AFTER_SECONDS", "900"))
    ANALYSIS_DEFAULT_PROMPT = os.getenv("ANALYSIS_DEFAULT_PROMPT") or DEFAULT_ANALYSIS_PROMPT
    CUSTOM_PROMPT_MAX_LENGTH = 1000

    # Listagem paginada de inspeções
    LIST_DEFAULT_PAGE_SIZE = 20
    LIST_MAX_PAGE_SIZE = 100

config = Config()
