"""上传文件校验"""

from models.data_models import MediaUpload
from models.errors import ValidationError

MAX_VIDEO_BYTES = 50 * 1024 * 1024
MAX_IMAGE_BYTES = 10 * 1024 * 1024


def validate_upload(
    upload: MediaUpload,
    max_video_bytes: int = MAX_VIDEO_BYTES,
    max_image_bytes: int = MAX_IMAGE_BYTES,
) -> MediaUpload:
    """校验上传文件类型和大小，不合格时抛出 ValidationError（消息直接展示给用户）。"""
    size = len(upload.data)

    if upload.is_video:
        if size > max_video_bytes:
            raise ValidationError(
                f"Video file is too large. Please select a file under {max_video_bytes // (1024 * 1024)}MB."
            )
        return upload

    if upload.is_image:
        if size > max_image_bytes:
            raise ValidationError(
                f"Image file is too large. Please select an image under {max_image_bytes // (1024 * 1024)}MB."
            )
        return upload

    raise ValidationError("Unsupported file type. Please upload a video or image.")
