from .backend_client import BackendClient, BackendAPIError, BackendTimeoutError

__all__ = ['BackendClient', 'BackendAPIError', 'BackendTimeoutError']
