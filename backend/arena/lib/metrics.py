"""
Prometheus-compatible metrics for the reservation engine.

Tracks:
- Bookings created (by status and whether they overrode an unpaid hold)
- Slot lock outcomes (acquired, conflict, released)
- Cancellations (by timing and original status)
- Ledger writes that failed after a booking committed
- Notification deliveries

Usage:
    from arena.lib.metrics import get_metrics_collector

    metrics = get_metrics_collector()
    metrics.increment_bookings_created(status="paid")
    metrics.increment_lock_events(outcome="conflict")

    # Export for Prometheus
    prometheus_output = metrics.export_prometheus()
"""

from typing import Dict, Tuple
from threading import Lock


class MetricsCollector:
    """
    Prometheus-style counter collector.

    Thread-safe for concurrent increments.
    """

    HELP_TEXTS = {
        "bookings_created_total": "Total number of bookings created",
        "booking_overrides_total": "Total number of unpaid holds displaced by a payer",
        "slot_lock_events_total": "Slot lock acquisitions, conflicts and releases",
        "booking_cancellations_total": "Total number of cancelled bookings",
        "booking_status_changes_total": "Staff-driven terminal status changes",
        "ledger_write_failures_total": "Ledger writes that failed after the booking committed",
        "notifications_total": "Notification dispatch attempts",
    }

    def __init__(self):
        self._lock = Lock()

        # Counters: key = (metric_name, labels_tuple), value = count
        self._counters: Dict[Tuple[str, Tuple[Tuple[str, str], ...]], int] = {}

    def _get_counter_key(self, metric_name: str, labels: Dict[str, str]) -> Tuple[str, Tuple[Tuple[str, str], ...]]:
        return (metric_name, tuple(sorted(labels.items())))

    def _increment(self, metric_name: str, labels: Dict[str, str], amount: int = 1):
        key = self._get_counter_key(metric_name, labels)
        with self._lock:
            self._counters[key] = self._counters.get(key, 0) + amount

    def _get_value(self, metric_name: str, labels: Dict[str, str]) -> int:
        key = self._get_counter_key(metric_name, labels)
        with self._lock:
            return self._counters.get(key, 0)

    # ===== Booking Metrics =====

    def increment_bookings_created(self, status: str, override: bool = False, amount: int = 1):
        """
        Increment bookings created counter.

        Args:
            status: Status of the new booking (unpaid, paid)
            override: True when the booking displaced an unpaid hold
            amount: Increment amount (default 1)
        """
        labels = {
            "status": status.lower(),
            "override": "true" if override else "false",
        }
        self._increment("bookings_created_total", labels, amount)
        if override:
            self._increment("booking_overrides_total", {}, amount)

    def increment_cancellations(self, previous_status: str, late: bool, amount: int = 1):
        """Increment cancellations counter."""
        labels = {
            "previous_status": previous_status.lower(),
            "timing": "late" if late else "early",
        }
        self._increment("booking_cancellations_total", labels, amount)

    def increment_status_changes(self, status: str, amount: int = 1):
        """Increment staff status changes (no_show, completed)."""
        self._increment("booking_status_changes_total", {"status": status.lower()}, amount)

    # ===== Locking / Ledger =====

    def increment_lock_events(self, outcome: str, amount: int = 1):
        """
        Increment slot lock events.

        Args:
            outcome: acquired, reentered, conflict, released
        """
        self._increment("slot_lock_events_total", {"outcome": outcome.lower()}, amount)

    def increment_ledger_failures(self, kind: str, amount: int = 1):
        """Increment ledger failures (credit_debit, credit_refund, fine, credit_shortfall)."""
        self._increment("ledger_write_failures_total", {"kind": kind.lower()}, amount)

    # ===== Notifications =====

    def increment_notifications(self, channel: str, status: str, amount: int = 1):
        """Increment notification attempts by channel (IN_APP, PUSH) and status."""
        labels = {
            "channel": channel.upper(),
            "status": status.lower(),
        }
        self._increment("notifications_total", labels, amount)

    # ===== Export =====

    def export_prometheus(self) -> str:
        """
        Export all metrics in Prometheus text format.

        Returns:
            Prometheus-compatible text output
        """
        output_lines = []

        metrics_by_name: Dict[str, list] = {}
        with self._lock:
            for (metric_name, labels_tuple), value in self._counters.items():
                metrics_by_name.setdefault(metric_name, []).append((dict(labels_tuple), value))

        for metric_name in sorted(metrics_by_name.keys()):
            help_text = self.HELP_TEXTS.get(metric_name, "Counter metric")
            output_lines.append(f"# HELP {metric_name} {help_text}")
            output_lines.append(f"# TYPE {metric_name} counter")

            for labels_dict, value in sorted(metrics_by_name[metric_name], key=lambda x: str(x[0])):
                if labels_dict:
                    labels_str = ",".join([f'{k}="{v}"' for k, v in sorted(labels_dict.items())])
                    output_lines.append(f"{metric_name}{{{labels_str}}} {value}")
                else:
                    output_lines.append(f"{metric_name} {value}")

            output_lines.append("")  # Blank line between metrics

        return "\n".join(output_lines)

    def get_counter_value(self, metric_name: str, labels: Dict[str, str]) -> int:
        """Get current value of a specific counter."""
        return self._get_value(metric_name, labels)

    def reset_all(self):
        """Reset all counters (for testing)."""
        with self._lock:
            self._counters.clear()


# Global singleton
_metrics_collector = MetricsCollector()


def get_metrics_collector() -> MetricsCollector:
    """Get the process-wide metrics collector."""
    return _metrics_collector


def reset_metrics():
    """Reset global metrics (for testing)."""
    _metrics_collector.reset_all()
