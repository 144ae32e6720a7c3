from .client import UploadClient, UploadResult, UploadProgress, InitResponse

__all__ = [
    'UploadClient',
    'UploadResult',
    'UploadProgress',
    'InitResponse'
]
