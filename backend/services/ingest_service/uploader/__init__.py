from .container_pool import UploadContainerPool
from .source_uploader import SourceUploader

__all__ = ["SourceUploader", "UploadContainerPool"]
