from .ids import new_request_id, request_id_timestamp_ms

__all__ = ["new_request_id", "request_id_timestamp_ms"]
