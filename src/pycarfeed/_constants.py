"""Internal constants shared across the library."""

BASE_URL = "http://192.168.1.108:8000"
CLIENT_ID = "mobile_app"
USER_AGENT = "pycarfeed/1"

UPLOAD_IMAGE_ENDPOINT = "/upload-image/"
MESSAGES_ENDPOINT = "/messages/"
IMAGES_PATH = "/images/"
PUSH_PATH = "/ws/"

#: ``client_id`` the service stamps on entries it authors itself.
SERVER_CLIENT_ID = "server"

MAX_IDENTIFIER_LENGTH = 8

UPLOAD_FIELD_NAME = "file"
UPLOAD_FILENAME = "photo.jpg"
UPLOAD_CONTENT_TYPE = "image/jpeg"


def truncate_identifier(value: str | None) -> str:
    """Clamp a car identifier to :data:`MAX_IDENTIFIER_LENGTH` characters.

    Only truncates; the character set is left alone.
    """
    if not value:
        return ""
    return value[:MAX_IDENTIFIER_LENGTH]


def identifier_message(identifier: str) -> str:
    """Display string sent alongside a submitted identifier."""
    return f"Car number submitted: {identifier}"
