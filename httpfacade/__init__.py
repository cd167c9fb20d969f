"""
Generic HTTP client facade.

Named AsyncClient resolution, request construction (JSON, multipart uploads,
form-urlencoded bodies, query strings projected from request models) and typed
response decoding into Success/Failure outcomes.
"""

from httpfacade.cancellation import CancellationToken
from httpfacade.client import HttpFacade, HttpFacadeError, RequestCancelledError, ResponseDecodeError
from httpfacade.http_client import ClientFactory, NamedClientFactory
from httpfacade.models import Failure, FilePart, MultipartForm, Outcome, Success, UploadedFile, UploadSource
from httpfacade.query import append_query_string, append_single_query, to_query_string
from httpfacade.settings import ClientSettings, Settings

__all__ = [
    "CancellationToken",
    "ClientFactory",
    "ClientSettings",
    "Failure",
    "FilePart",
    "HttpFacade",
    "HttpFacadeError",
    "MultipartForm",
    "NamedClientFactory",
    "Outcome",
    "RequestCancelledError",
    "ResponseDecodeError",
    "Settings",
    "Success",
    "UploadSource",
    "UploadedFile",
    "append_query_string",
    "append_single_query",
    "to_query_string",
]
