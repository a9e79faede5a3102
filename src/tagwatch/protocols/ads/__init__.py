"""
Beckhoff TwinCAT ADS client.

Requires the optional ``pyads`` package (``pip install tagwatch[ads]``);
without it the client can be constructed but connect() fails.
"""
from tagwatch.protocols.ads.client import ADSClient
from tagwatch.protocols.ads.driver import HAS_PYADS, PyadsDriver

__all__ = ['ADSClient', 'PyadsDriver', 'HAS_PYADS']
