import mimetypes

from sqlalchemy import or_, and_

from models.file import FileEntity

IMAGE = "image"
VIDEO = "video"
AUDIO = "audio"
DOCUMENT = "document"
ARCHIVE = "archive"
CODE = "code"
FOLDER = "folder"
OTHER = "other"

# Категория -> (префиксы MIME, расширения); порядок важен: code раньше document из-за text/
CATEGORY_MAP = {
    IMAGE: (("image/",), {"jpg", "jpeg", "png", "gif", "bmp", "webp", "svg"}),
    VIDEO: (("video/",), {"mp4", "avi", "mov", "wmv", "flv", "mkv", "webm"}),
    AUDIO: (("audio/",), {"mp3", "wav", "ogg", "flac", "aac", "m4a"}),
    CODE: (
        ("text/javascript", "application/json", "text/html", "text/css", "text/xml"),
        {"js", "ts", "jsx", "tsx", "json", "html", "css", "scss", "less", "xml", "c", "cpp",
         "h", "py", "java", "rb", "php", "go", "rs", "sql", "sh", "bat", "ps1", "yaml", "toml"},
    ),
    DOCUMENT: (
        (
            "application/pdf",
            "application/msword",
            "application/vnd.openxmlformats-officedocument.wordprocessingml",
            "application/vnd.ms-excel",
            "application/vnd.openxmlformats-officedocument.spreadsheetml",
            "application/vnd.ms-powerpoint",
            "application/vnd.openxmlformats-officedocument.presentationml",
            "text/",
            "application/rtf",
        ),
        {"pdf", "doc", "docx", "xls", "xlsx", "ppt", "pptx", "txt", "rtf", "odt", "ods", "odp", "csv", "md"},
    ),
    ARCHIVE: (
        ("application/zip", "application/x-rar-compressed", "application/x-7z-compressed",
         "application/x-tar", "application/gzip"),
        {"zip", "rar", "7z", "tar", "gz", "bz2", "xz"},
    ),
}

CATEGORIES = tuple(CATEGORY_MAP) + (FOLDER, OTHER)


def file_category(mime_type: str, extension: str) -> str:
    mime_type = (mime_type or "").lower()
    extension = (extension or "").lower().lstrip(".")

    if mime_type in ("folder", "directory"):
        return FOLDER

    for category, (prefixes, extensions) in CATEGORY_MAP.items():
        if any(mime_type.startswith(prefix) for prefix in prefixes):
            return category
        if extension in extensions:
            return category
    return OTHER


def guess_mime(name: str) -> str:
    mime_type, _ = mimetypes.guess_type(name)
    return mime_type or "application/octet-stream"


def type_filter(category: str):
    """Условие выборки по категории (старые записи хранят MIME в type)"""
    if category == FOLDER:
        return FileEntity.is_folder.is_(True)
    return and_(
        FileEntity.is_folder.is_(False),
        or_(FileEntity.type == category, FileEntity.type.startswith(f"{category}/")),
    )
