"""Various small utility or helper stuff not TLS specific."""

from collections.abc import Hashable
from typing import Any
from dataclasses import dataclass, field
import pprint

type _Pretty = str | list[_Pretty] | dict[str, _Pretty]

def _pretty_prep(obj: Any, byteslen: int|None=None) -> _Pretty :
    if isinstance(obj, bytes) or isinstance(obj, bytearray):
        if byteslen is not None and len(obj) > byteslen:
            return f"{obj[:byteslen//2].hex()}...{obj[-byteslen//2:].hex()}"
        else:
            return obj.hex()
    elif isinstance(obj, tuple):
        if hasattr(obj, '_asdict'):
            return _pretty_prep(obj._asdict(), byteslen)
        else:
            return [_pretty_prep(value, byteslen) for value in obj]
    elif isinstance(obj, dict):
        return {str(key): _pretty_prep(value, byteslen) for key,value in obj.items()}
    elif isinstance(obj, list):
        return [_pretty_prep(value, byteslen) for value in obj]
    else:
        return str(obj)

def pformat(obj:Any, byteslen:int=32, **kwargs: Any) -> str:
    return pprint.pformat(_pretty_prep(obj, byteslen), sort_dicts=False, **kwargs)

@dataclass
class OneToOne[K1: Hashable, K2: Hashable]:
    """A one-to-one mapping, i.e. two-way dictionary."""
    _forward: dict[K1,K2] = field(default_factory=dict)
    _reverse: dict[K2,K1] = field(default_factory=dict)

    def add(self, key1: K1, key2: K2) -> None:
        try:
            cur_k2 = self._forward[key1]
        except KeyError:
            pass
        else:
            if key2 == cur_k2:
                return
            raise ValueError(f"can't insert ({key1},{key2}) because ({key1},{cur_k2}) is already there")
        try:
            cur_k1 = self._reverse[key2]
        except KeyError:
            pass
        else:
            raise ValueError(f"can't insert ({key1},{key2}) because ({cur_k1},{key2}) is already there")
        self._forward[key1] = key2
        self._reverse[key2] = key1

    def get1(self, key: K1) -> K2:
        return self._forward[key]

    def get2(self, key: K2) -> K1:
        return self._reverse[key]

