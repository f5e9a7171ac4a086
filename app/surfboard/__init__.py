"""Modem-facing half of the watchdog.

Written against an SB6183 but the status page and the `goform/RgConfiguration.pl` handler look the same on
the other DOCSIS 3.0 SB units I've seen screenshots of, so this may well work further back in the family.
"""
