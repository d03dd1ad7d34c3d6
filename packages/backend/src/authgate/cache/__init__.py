"""Shared key-value cache — rate counters and OAuth state.

Learn: Anything that has to be consistent across every running instance
of the service lives here, not in process memory. A rate limiter that
counts per process is useless behind a load balancer.
"""
