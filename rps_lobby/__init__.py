"""Shared-state coordination engine for a serverless rock-paper-scissors lobby.

Every context (browser tab, worker, API process) reads and writes one JSON
document held in Redis and learns about other contexts' writes from a Redis
stream. There is no central arbiter: the last write wins.
"""
