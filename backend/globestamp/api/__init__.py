"""API router subpackage for the globe drawing backend.

Submodules:
    - stamp: Submitting, listing and enhancing stamped drawings.
    - enhance: Restyling a drawing through the image-edit provider.
    - realtime: Activity listing and websocket feeds of new records.
    - schemas: Request bodies shared by the routers.
    - errors: Mapping of application exceptions to HTTP responses.
"""
