"""pdsql: PowerDNS generic-SQL records served through a DNS resolve plugin chain."""

__version__ = "0.1.0"
