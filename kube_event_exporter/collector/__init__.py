"""Collector package for the exporter.

Turns the cluster's event stream into enriched events for the router.

Submodules
----------
admission     -- AdmissionFilter: max-event-age check with quiet startup sync.
enricher      -- Enricher: involved-object labels/annotations and cluster name.
fetcher       -- KubeObjectFetcher: dynamic-client object reads, QPS/burst limited.
event_watcher -- EventWatcher: list + watch of v1.Event, add-only, sequential.
leader        -- LeaderElector: Lease lock gating the pipeline start.
"""

from kube_event_exporter.collector.admission import AdmissionFilter
from kube_event_exporter.collector.enricher import Enricher
from kube_event_exporter.collector.event_watcher import EventWatcher
from kube_event_exporter.collector.fetcher import KubeObjectFetcher

__all__ = ["AdmissionFilter", "Enricher", "EventWatcher", "KubeObjectFetcher"]
