import os
import logging
import uuid
from typing import Optional

from werkzeug.utils import secure_filename

from src.config import config

logger = logging.getLogger(__name__)

LOCAL_SCHEME = "local://"


class StorageService:
    """
    Abstração para armazenamento de fotos (Local vs Google Cloud Storage).
    """
    def __init__(self, bucket_name=None, local_dir=None):
        self.bucket_name = bucket_name or config.GCP_STORAGE_BUCKET
        self.local_dir = local_dir or config.LOCAL_STORAGE_DIR
        self.client = None
        self._setup_client()

    def _setup_client(self):
        if not self.bucket_name:
            logger.warning("📂 Storage Service: Bucket não definido. Usando armazenamento LOCAL.")
            return
        try:
            from google.cloud import storage
            self.client = storage.Client()
            logger.info(f"☁️ Storage Service: Configurado para GCS (Bucket: {self.bucket_name})")
        except Exception as e:
            logger.error(f"❌ Erro ao inicializar client GCS: {e}")
            self.client = None

    @property
    def _public_prefix(self) -> str:
        return f"https://storage.googleapis.com/{self.bucket_name}/"

    def save_image(self, image_bytes: bytes, organization_id, filename: Optional[str] = None) -> str:
        """
        Salva a foto e retorna a URL (https://... no GCS, local://... em disco).
        As fotos ficam separadas por organização; o prefixo uuid evita que
        fotos com o mesmo nome se sobrescrevam.
        """
        safe_name = secure_filename(filename) if filename else ""
        filename = f"{uuid.uuid4().hex}_{safe_name}" if safe_name else f"{uuid.uuid4()}.jpg"
        relative_path = f"photos/{organization_id}/{filename}"

        # 1. Google Cloud Storage
        if self.client and self.bucket_name:
            try:
                blob = self.client.bucket(self.bucket_name).blob(relative_path)
                blob.upload_from_string(image_bytes, content_type="image/jpeg")
                return f"{self._public_prefix}{relative_path}"
            except Exception as e:
                logger.error(f"❌ Erro no Upload GCS: {e}")
                raise

        # 2. Local Storage (Dev / Fallback)
        target_path = os.path.join(self.local_dir, relative_path)
        try:
            os.makedirs(os.path.dirname(target_path), exist_ok=True)
            with open(target_path, "wb") as dest_f:
                dest_f.write(image_bytes)
        except OSError as e:
            logger.error(f"❌ Erro no Upload Local: {e}")
            raise
        logger.info(f"✅ Foto salva localmente: {target_path}")
        return f"{LOCAL_SCHEME}{relative_path}"

    def read_image(self, url: str) -> Optional[bytes]:
        """Lê a foto. Retorna None se ela não existir mais."""
        if not url:
            return None

        if url.startswith(LOCAL_SCHEME):
            path = os.path.join(self.local_dir, url[len(LOCAL_SCHEME):])
            if not os.path.exists(path):
                logger.warning(f"⚠️ Foto não encontrada no disco: {path}")
                return None
            with open(path, "rb") as f:
                return f.read()

        if self.client and url.startswith(self._public_prefix):
            blob = self.client.bucket(self.bucket_name).blob(url[len(self._public_prefix):])
            if not blob.exists():
                logger.warning(f"⚠️ Foto não encontrada no GCS: {url}")
                return None
            return blob.download_as_bytes()

        logger.error(f"❌ URL de foto não suportada por este storage: {url}")
        return None
