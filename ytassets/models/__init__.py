from ytassets.models.credential import ProviderCredential

__all__ = [
    "ProviderCredential",
]
