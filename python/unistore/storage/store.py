"""
The contract for persisting saved connection configurations, and a simple in-memory
implementation of it.

How configurations are stored (and how credentials are protected) is up to the implementation;
the storage client never touches a store directly.
"""
import copy, time, uuid
from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import List

from .exceptions import StorageResourceNotFound

class ConnectionStore(ABC):
    """
    a repository of saved connection configurations.  Each saved configuration is a dictionary
    with at least ``id``, ``name``, and ``type`` properties.
    """

    @abstractmethod
    def find(self, id: str=None, name: str=None) -> Mapping:
        """
        return the saved configuration with the given identifier or name, or None if none exists
        """
        raise NotImplementedError()

    @abstractmethod
    def save(self, config: Mapping) -> str:
        """
        save a new configuration and return its assigned identifier
        """
        raise NotImplementedError()

    @abstractmethod
    def update(self, id: str, config: Mapping) -> None:
        """
        replace the properties of a saved configuration with those given
        :raises StorageResourceNotFound:  if no configuration with the identifier exists
        """
        raise NotImplementedError()

    @abstractmethod
    def delete(self, id: str) -> bool:
        """
        delete a saved configuration, returning False if it did not exist
        """
        raise NotImplementedError()

    @abstractmethod
    def list(self) -> List[Mapping]:
        """
        return all saved configurations, most recently used first
        """
        raise NotImplementedError()


class InMemoryConnectionStore(ConnectionStore):
    """
    a :py:class:`ConnectionStore` that keeps configurations in memory (e.g. as loaded from the
    ``connections`` section of a configuration file)
    """

    def __init__(self, initial=None):
        self._data = {}
        for cfg in (initial or []):
            self.save(cfg)

    def find(self, id=None, name=None):
        if id is not None:
            cfg = self._data.get(id)
            return copy.deepcopy(cfg) if cfg else None
        if name is not None:
            for cfg in self._data.values():
                if cfg.get('name') == name:
                    return copy.deepcopy(cfg)
        return None

    def save(self, config):
        cfg = copy.deepcopy(dict(config))
        if not cfg.get('id'):
            cfg['id'] = uuid.uuid4().hex
        cfg.setdefault('last_connected', time.time())
        self._data[cfg['id']] = cfg
        return cfg['id']

    def update(self, id, config):
        if id not in self._data:
            raise StorageResourceNotFound(id, "No saved connection with id="+str(id))
        self._data[id].update(copy.deepcopy(dict(config)))
        self._data[id]['id'] = id

    def touch(self, id):
        """
        record that the connection with the given identifier was just used
        """
        if id in self._data:
            self._data[id]['last_connected'] = time.time()

    def delete(self, id):
        return self._data.pop(id, None) is not None

    def list(self):
        return sorted([copy.deepcopy(c) for c in self._data.values()],
                      key=lambda c: c.get('last_connected', 0), reverse=True)
