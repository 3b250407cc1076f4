class BlobNotFoundError(KeyError):
    """Raised when a key is not present in the blob store."""
    pass
