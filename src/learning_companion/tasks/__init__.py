"""
Task subsystem.

Components:
- task_models.py: data structures (Task, RetryEntry, ChangeEvent)
- task_codec.py: row shape + JSON snapshot/backup format
- task_cache.py: flat key-value cache for offline snapshots
- task_store.py: SQLite-backed remote collection
- rest_collection.py: PostgREST-backed remote collection
- task_channel.py: live change channels (in-process hub, polling)
- task_sync.py: optimistic local state + retry queue + change reducer
- retry_loop.py: background loop replaying the retry queue
"""
