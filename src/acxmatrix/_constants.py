"""Internal constants shared across the service."""

CRM_BASE_URL = "https://services.leadconnectorhq.com"
CRM_API_VERSION = "2021-07-28"

SECRET_HEADER = "x-acx-secret"
SESSION_COOKIE_NAME = "acx_session"
LOGIN_PATH = "/matrix-login"

DEFAULT_ACCOUNT = "ACX"

# Stages of the WF3 enforcement workflow reported in summary meta.
WF3_STAGES: tuple[str, ...] = ("t15", "t120", "eod")
