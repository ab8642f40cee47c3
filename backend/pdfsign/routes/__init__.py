"""
PDFSign Backend: API Routes Package
=====================================

Route Inventory:
    - pdf.py:     POST   /pdf/upload
                  POST   /pdf/sign/{id}
                  GET    /pdf/list
                  DELETE /pdf/delete/{documentId}
                  POST   /pdf/email
    - files.py:   GET    /api/files/{path}       (stored PDFs)
    - health.py:  GET    /health

Handlers stay thin: pull services from request.app.state, call one service
method, shape the HTTP response. Errors propagate to the global handlers.
"""
