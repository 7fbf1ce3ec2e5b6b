"""
下載檔案用的 HTTP header。
Starlette 的 header 只接受 latin-1，中文檔名須走 RFC 5987：filename（ASCII 備援）+ filename*=UTF-8''...。
"""
from urllib.parse import quote

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def build_content_disposition(ascii_filename: str, unicode_filename: str) -> str:
    """
    例：build_content_disposition("guard_earnings_2024_04.xlsx", "保全收入_2024_04.xlsx")
    """
    encoded = quote(unicode_filename, safe="")
    return f'attachment; filename="{ascii_filename}"; filename*=UTF-8\'\'{encoded}'


def xlsx_download_headers(ascii_filename: str, unicode_filename: str) -> dict:
    return {"Content-Disposition": build_content_disposition(ascii_filename, unicode_filename)}
