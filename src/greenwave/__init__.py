"""Greenwave — live ambulance passage feed.

Watches the ambulance/traffic-light event store and pushes every new
passage to the dashboards that are connected, so operators see an
ambulance crossing a light within one poll interval.
"""

__version__ = "0.1.0"
