"""
Shared Infrastructure
=====================

Low-level technical concerns shared by every module:
- Structured JSON logging
- Latency measurement for store operations
"""
