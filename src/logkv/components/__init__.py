"""Storage building blocks: codec, log file, index, locking and compaction."""
