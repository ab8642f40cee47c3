"""
PDFSign Backend: Services Layer
=================================

Service Inventory:
    - coordinates:       UI space → PDF content space mapping
    - mark_renderer:     draws a text/image mark and the status footer on a page
    - signing_service:   SigningService, the validate → fetch → render →
                         store → persist pipeline
    - document_service:  DocumentService, uploads, listing, owner-only delete
                         and email
    - object_store:      ObjectStore contract and LocalObjectStore
    - signature_store:   SignatureStore, SignatureRecord persistence
    - identity:          TokenIdentityProvider and the require_caller dependency
    - mail_service:      SmtpMailSender

Nothing in this package is instantiated at import time. create_app() builds
the collaborators and hands them to the services.
"""
