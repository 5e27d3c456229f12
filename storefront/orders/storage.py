import base64
import binascii
import logging
import uuid
from abc import ABC, abstractmethod

from django.core.files.base import ContentFile
from django.core.files.storage import default_storage

logger = logging.getLogger(__name__)

EXTENSIONS = {
    'image/png': 'png',
    'image/jpeg': 'jpg',
    'image/jpg': 'jpg',
    'image/webp': 'webp',
    'application/pdf': 'pdf',
}


class ProofStorage(ABC):

    @abstractmethod
    def store(self, raw_blob, order_id):
        """Persist a proof blob and return an opaque storage reference."""


class DjangoFileProofStorage(ProofStorage):
    """
    Writes payment proofs through Django's ``default_storage`` under
    ``payment_proofs/<order_id>/``.

    Accepts raw bytes, a base64 data URI (``data:image/png;base64,...``)
    or a Django uploaded file.
    """

    def __init__(self, storage=None, prefix='payment_proofs'):
        self.storage = storage or default_storage
        self.prefix = prefix

    def store(self, raw_blob, order_id):
        content, extension = self._decode(raw_blob)
        if not content:
            raise ValueError("Payment proof is empty")

        name = f"{self.prefix}/{order_id}/{uuid.uuid4().hex}.{extension}"
        saved = self.storage.save(name, ContentFile(content))
        logger.info(f"[Storage] Payment proof for order {order_id} stored as {saved}")
        return saved

    @staticmethod
    def _decode(raw_blob):
        if hasattr(raw_blob, 'read'):
            content_type = getattr(raw_blob, 'content_type', '') or ''
            return raw_blob.read(), EXTENSIONS.get(content_type, 'bin')

        if isinstance(raw_blob, bytes):
            return raw_blob, 'bin'

        if isinstance(raw_blob, str):
            extension = 'bin'
            data = raw_blob
            if raw_blob.startswith('data:'):
                header, _, data = raw_blob.partition(',')
                content_type = header[len('data:'):].split(';')[0]
                extension = EXTENSIONS.get(content_type, 'bin')
            try:
                return base64.b64decode(data, validate=True), extension
            except (binascii.Error, ValueError):
                raise ValueError("Payment proof is not valid base64")

        raise TypeError(f"Unsupported payment proof type: {type(raw_blob).__name__}")
