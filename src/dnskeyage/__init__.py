"""dnskeyage: track how long each published DNSKEY of a zone has existed."""

__version__ = "1.0.0"
