# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by St. Edward Church & School (Nashville, TN).
# Unauthorized use, distribution, or modification is prohibited.

"""
Poll History - Track and analyze fetch outcomes over time
"""
from datetime import timedelta
from typing import Dict, List, Optional
import statistics

import config
from models import FetchOutcome
from utils.timezone import utc_now


class PollHistory:
    """Keeps a bounded history of fetch outcomes and their statistics"""

    def __init__(self, max_entries: Optional[int] = None):
        self.history: List[Dict] = []
        self.max_entries = max_entries or config.HISTORY_MAX_ENTRIES

    def add_entry(self, outcome: FetchOutcome):
        """Add a fetch outcome to history"""
        entry = {
            'timestamp': outcome.timestamp,
            'success': outcome.success,
            'count': outcome.count,
            'duration': outcome.duration,
            'source': outcome.source,
            'error': outcome.error,
        }

        self.history.append(entry)

        # Trim history if it exceeds max entries
        if len(self.history) > self.max_entries:
            self.history.pop(0)

    def get_statistics(self, hours: int = 24, now=None) -> Dict:
        """Calculate statistics for the given time period"""
        now = now or utc_now()
        cutoff_time = now - timedelta(hours=hours)
        recent_entries = [
            entry for entry in self.history
            if entry['timestamp'] > cutoff_time
        ]

        if not recent_entries:
            return {
                'period_hours': hours,
                'total_fetches': 0,
                'successful_fetches': 0,
                'failed_fetches': 0,
                'success_rate': 0,
                'average_duration': 0,
                'last_fetch': None,
                'last_successful_fetch': None,
                'last_error': None
            }

        successful = [e for e in recent_entries if e['success']]
        failed = [e for e in recent_entries if not e['success']]

        durations = [e['duration'] for e in successful if e['duration'] > 0]
        avg_duration = statistics.mean(durations) if durations else 0

        return {
            'period_hours': hours,
            'total_fetches': len(recent_entries),
            'successful_fetches': len(successful),
            'failed_fetches': len(failed),
            'success_rate': round(len(successful) / len(recent_entries) * 100, 1),
            'average_duration': round(avg_duration, 3),
            'last_fetch': recent_entries[-1]['timestamp'].isoformat(),
            'last_successful_fetch': successful[-1]['timestamp'].isoformat() if successful else None,
            'last_error': failed[-1]['error'] if failed else None
        }
