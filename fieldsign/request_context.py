from fastapi import Request

from .schemas import RequestContext, RequestHeaders, RequestInfo

def capture_request_context(request: Request) -> RequestContext:
    """Build the provenance record of an inbound signing request.

    Values are captured as seen, proxy headers included, without parsing.

    Headers missing from the request are left as None so they are stored as
    absent, never as empty strings.
    """
    headers = request.headers
    return RequestContext(
        ip_address=request.client.host if request.client else None,
        forwarded_ip=headers.get("x-forwarded-for"),
        real_ip=headers.get("x-real-ip"),
        user_agent=headers.get("user-agent"),
        headers=RequestHeaders(
            referer=headers.get("referer"),
            origin=headers.get("origin"),
            accept_language=headers.get("accept-language"),
            accept_encoding=headers.get("accept-encoding"),
            accept=headers.get("accept"),
            host=headers.get("host"),
            connection=headers.get("connection"),
            cache_control=headers.get("cache-control"),
        ),
        request_info=RequestInfo(
            method=request.method,
            url=str(request.url),
            protocol=request.url.scheme,
            secure=request.url.scheme == "https",
        ),
    )
