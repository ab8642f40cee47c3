"""
PDFSign Backend: Middleware Package
=====================================

Middleware Chain:
    Request → [Rate Limit] → [Request ID] → [Logging] → [GZip] → [CORS] → Route

    Rate limiting runs first so rejected requests cost nothing. The request id
    is assigned before the access log line is written so both share it.
"""
