"""Configuration for the multipart upload client."""

from multipart_upload.config_manager.config import ConfigManager
from multipart_upload.config_manager.upload_config import UploadConfig

__all__ = ["ConfigManager", "UploadConfig"]
