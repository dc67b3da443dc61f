from .facade import JobFacade, decode_error, status_response

__all__ = ['JobFacade', 'decode_error', 'status_response']
