"""Use-case / operations layer.

High-level actions invoked by the backend facade. Currently the sequential
crop-then-upload queue (`crop_uploader.ops.upload_queue`).
"""
