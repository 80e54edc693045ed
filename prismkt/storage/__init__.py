"""Database interface with in-memory, on-disk and Redis backends."""