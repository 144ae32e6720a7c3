from .server import UploadServer

__all__ = ['UploadServer']
