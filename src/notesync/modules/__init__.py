"""Feature modules: the vector index (``vdb``) and its synchronizer (``sync``)."""
