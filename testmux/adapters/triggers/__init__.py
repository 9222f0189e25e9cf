"""Trigger sources feeding watch mode.

- File watcher (watchdog) over the spec files under test
- Dev-server push notification channel (httpx streaming)
"""
