"""cURL command rendering for executed or cached requests."""

from .builder import PreparedRequest, UploadFile

CONTINUATION = " \\\n  "


def shell_quote(value: str) -> str:
    """Wrap in single quotes, escaping embedded single quotes as '\\''."""
    return "'" + value.replace("'", "'\\''") + "'"


def format_curl(
    method: str,
    url: str,
    headers: dict[str, str] | None = None,
    body: str | None = None,
    form_fields: list[tuple[str, str]] | None = None,
    files: list[tuple[str, UploadFile]] | None = None,
    multipart: bool = False,
) -> str:
    """Render a multi-line cURL command equivalent to the request."""
    parts = [f"curl -X {method.upper()} {shell_quote(url)}"]

    for key, value in (headers or {}).items():
        if multipart and key.lower() == "content-type":
            continue
        parts.append(f"-H {shell_quote(f'{key}: {value}')}")

    if multipart:
        for name, upload in files or []:
            parts.append(f"-F {shell_quote(f'{name}=@{upload.filename}')}")
        for name, value in form_fields or []:
            if value:
                parts.append(f"-F {shell_quote(f'{name}={value}')}")
    elif body:
        parts.append(f"-d {shell_quote(body)}")

    return CONTINUATION.join(parts)


def curl_for(request: PreparedRequest) -> str:
    return format_curl(
        request.method,
        request.url,
        headers=request.headers,
        body=request.body,
        form_fields=request.form_fields,
        files=request.files,
        multipart=request.multipart,
    )
