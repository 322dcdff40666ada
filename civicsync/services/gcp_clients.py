# civicsync/services/gcp_clients.py
from functools import lru_cache
from google.cloud import firestore
import requests

from civicsync.core.config import settings


@lru_cache(maxsize=1)
def get_firestore_client() -> firestore.Client:
    if settings.gcp_project:
        return firestore.Client(project=settings.gcp_project)
    return firestore.Client()


@lru_cache(maxsize=1)
def get_http_session() -> requests.Session:
    return requests.Session()
