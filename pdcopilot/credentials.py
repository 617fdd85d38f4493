import os
from typing import Optional, Protocol

from dotenv import load_dotenv

from .artifacts import API_KEY_KEY, KeyValueStore
from .llm import check_api_key

API_KEY_ENV = "ANTHROPIC_API_KEY"


class CredentialProvider(Protocol):
    def __call__(self) -> Optional[str]: ...


class StoredCredentialProvider:
    def __init__(self, store: KeyValueStore):
        self.store = store

    def __call__(self) -> Optional[str]:
        return self.store.get(API_KEY_KEY)


class EnvCredentialProvider:
    def __init__(self, env_name: str = API_KEY_ENV):
        self.env_name = env_name

    def __call__(self) -> Optional[str]:
        load_dotenv()
        return os.getenv(self.env_name)


class ChainedCredentialProvider:
    def __init__(self, *providers: CredentialProvider):
        self.providers = providers

    def __call__(self) -> Optional[str]:
        for provider in self.providers:
            value = provider()
            if value and value.strip():
                return value
        return None


def save_api_key(store: KeyValueStore, api_key: Optional[str]) -> str:
    checked = check_api_key(api_key)
    store.set(API_KEY_KEY, checked)
    return checked


def clear_api_key(store: KeyValueStore) -> None:
    store.remove(API_KEY_KEY)
