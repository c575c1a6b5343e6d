"""Throughput probe backends, discovered by fastwifi at startup."""
