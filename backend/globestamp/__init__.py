"""Backend package for the globe drawing service.

Visitors draw on a 3D globe and stamp the drawing onto a region of the
planet. This package validates and stores the submitted PNG images,
records each stamp as a drawing with its geographic bounds, keeps an
append-only activity log, optionally restyles drawings through an
external image-edit provider, and streams new records to live clients.

- Coordinate transforms between UV, sphere and lat/long space
- Per-actor hourly stamp and daily enhancement quotas
- PostgreSQL-backed drawings and activity with an in-process realtime bus

See module sub-docstrings for details on architecture and usage.
"""
