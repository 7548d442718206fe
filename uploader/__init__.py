"""
Video uploader client.

Uploads recorded videos to an object store, tracks each upload's status in a
remote document store and keeps a local view of the user's videos in sync
with that store's change stream.
"""

__version__ = "0.1.0"
