"""
RSA key material and distribution of public keys between services.

Each signing service (the issuer for bearer tokens, the gateway for cache
entries) owns one :class:`KeyMaterial`, generated on first start and persisted
as PEM files so that it survives restarts. Consumers obtain the matching
public key through a :class:`PublicKeyRing`, which caches it in-process and
in Redis and falls back to an HTTP fetch.
"""

import os
import threading
from typing import Any, Optional, Union

import requests
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from retry import retry

from .exceptions import KeyUnavailable, CacheUnavailable

import logging

logger = logging.getLogger(__name__)

MIN_KEY_SIZE = 2048
PUBLIC_KEY_TTL = 86_400     # 24 hours.

PublicKey = rsa.RSAPublicKey
PrivateKey = rsa.RSAPrivateKey


def load_public_key(pem: Union[str, bytes]) -> PublicKey:
    """Parse a PEM-encoded RSA public key."""
    if isinstance(pem, str):
        pem = pem.encode('ascii')
    try:
        key = serialization.load_pem_public_key(pem)
    except (ValueError, TypeError) as e:
        raise KeyUnavailable(f'Not a valid public key: {e}') from e
    if not isinstance(key, rsa.RSAPublicKey):
        raise KeyUnavailable('Not an RSA public key')
    return key


def dump_public_key(key: PublicKey) -> str:
    """Serialize an RSA public key as PEM (SubjectPublicKeyInfo)."""
    return key.public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo
    ).decode('ascii')


class KeyMaterial(object):
    """An RSA key pair belonging to a signing service."""

    def __init__(self, private_key: PrivateKey, name: str = 'service',
                 source: str = 'generated') -> None:
        if private_key.key_size < MIN_KEY_SIZE:
            raise KeyUnavailable(f'RSA keys must be at least {MIN_KEY_SIZE}'
                                 f' bits; got {private_key.key_size}')
        self.name = name
        self.source = source
        self.private_key = private_key
        self.public_key: PublicKey = private_key.public_key()

    @property
    def key_size(self) -> int:
        return self.private_key.key_size

    @property
    def public_pem(self) -> str:
        return dump_public_key(self.public_key)

    @property
    def private_pem(self) -> str:
        return self.private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption()
        ).decode('ascii')

    @classmethod
    def generate(cls, name: str = 'service',
                 key_size: int = MIN_KEY_SIZE) -> 'KeyMaterial':
        """Generate a fresh key pair, without persisting it."""
        private_key = rsa.generate_private_key(public_exponent=65537,
                                               key_size=key_size)
        return cls(private_key, name=name, source='generated')

    @classmethod
    def load_or_generate(cls, directory: str, name: str,
                         key_size: int = MIN_KEY_SIZE) -> 'KeyMaterial':
        """
        Load the key pair for ``name`` from ``directory``, or create one.

        Keys are stored as ``<name>-private.pem`` and ``<name>-public.pem``.
        If either file is missing a new pair is generated and written, so
        restarting a service keeps its keys.

        Parameters
        ----------
        directory : str
            Created if it does not exist.
        name : str
            Prefix for the PEM files, e.g. ``gateway`` or ``issuer``.
        key_size : int
            Size in bits for newly generated keys.

        Returns
        -------
        :class:`KeyMaterial`

        Raises
        ------
        :class:`KeyUnavailable`
            If existing key files cannot be read or parsed.

        """
        private_path = os.path.join(directory, f'{name}-private.pem')
        public_path = os.path.join(directory, f'{name}-public.pem')
        if os.path.exists(private_path) and os.path.exists(public_path):
            try:
                with open(private_path, 'rb') as f:
                    private_key = serialization.load_pem_private_key(
                        f.read(), password=None
                    )
            except (OSError, ValueError, TypeError) as e:
                raise KeyUnavailable(f'Could not load {private_path}: {e}') \
                    from e
            if not isinstance(private_key, rsa.RSAPrivateKey):
                raise KeyUnavailable(f'{private_path} is not an RSA key')
            logger.info('Loaded existing %s keys from %s', name, directory)
            return cls(private_key, name=name, source='file')

        material = cls.generate(name=name, key_size=key_size)
        try:
            os.makedirs(directory, exist_ok=True)
            with open(private_path, 'w') as f:
                f.write(material.private_pem)
            os.chmod(private_path, 0o600)
            with open(public_path, 'w') as f:
                f.write(material.public_pem)
        except OSError as e:
            raise KeyUnavailable(f'Could not write keys to {directory}: {e}') \
                from e
        logger.info('Generated new %s keys in %s', name, directory)
        material.source = 'file'
        return material


class PublicKeyRing(object):
    """
    Provides the public key of a remote signing service.

    Lookup order is the in-process copy, then Redis (``public_key:<service>``,
    shared by every process), then an HTTP fetch from ``fetch_url``. A fetched
    key is written back to both caches.

    The endpoint must return JSON with the PEM under ``publicKey``.
    """

    def __init__(self, service: str, fetch_url: str, store: Any = None,
                 ttl: int = PUBLIC_KEY_TTL, timeout: float = 5.0) -> None:
        """
        Parameters
        ----------
        service : str
            Name of the service that owns the key, e.g. ``gateway``.
        fetch_url : str
            Endpoint that publishes the key.
        store : :class:`gatehouse.auth.cache.store.SignedCacheStore`
            Optional shared store.
        ttl : int
            Seconds for which a key is kept in the shared store.
        timeout : float
            Timeout for each HTTP attempt.

        """
        self.service = service
        self.fetch_url = fetch_url
        self.store = store
        self.ttl = ttl
        self.timeout = timeout
        self._key: Optional[PublicKey] = None
        self._lock = threading.Lock()

    def get(self) -> PublicKey:
        """
        Get the public key.

        Raises
        ------
        :class:`KeyUnavailable`
            If the key is not cached and cannot be fetched.

        """
        if self._key is not None:
            return self._key
        with self._lock:
            if self._key is None:
                self._key = self._load()
            return self._key

    def refresh(self) -> PublicKey:
        """Discard any cached copy and fetch the key again."""
        with self._lock:
            self._key = None
            if self.store is not None:
                try:
                    self.store.delete_public_key(self.service)
                except CacheUnavailable as e:
                    logger.warning('Could not drop cached %s key: %s',
                                   self.service, e)
            self._key = self._load(skip_store=True)
            return self._key

    def _load(self, skip_store: bool = False) -> PublicKey:
        if self.store is not None and not skip_store:
            try:
                pem = self.store.get_public_key(self.service)
            except CacheUnavailable as e:
                logger.warning('Shared store unavailable for %s key: %s',
                               self.service, e)
                pem = None
            if pem:
                logger.debug('Loaded %s key from shared store', self.service)
                return load_public_key(pem)

        try:
            pem = self._fetch()
        except (requests.RequestException, ValueError, KeyError) as e:
            raise KeyUnavailable(f'Could not fetch {self.service} public key'
                                 f' from {self.fetch_url}: {e}') from e
        key = load_public_key(pem)
        if self.store is not None:
            try:
                self.store.set_public_key(self.service, pem, ttl=self.ttl)
            except CacheUnavailable as e:
                logger.warning('Could not cache %s key: %s', self.service, e)
        logger.info('Fetched %s public key from %s', self.service,
                    self.fetch_url)
        return key

    @retry(requests.RequestException, tries=3, delay=0.1, backoff=2)
    def _fetch(self) -> str:
        response = requests.get(self.fetch_url, timeout=self.timeout)
        response.raise_for_status()
        pem: str = response.json()['publicKey']
        return pem
