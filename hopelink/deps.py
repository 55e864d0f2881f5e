# hopelink/deps.py
from hopelink.core.config import settings

if settings.use_mongo:
    from hopelink.core.db import get_db
    from hopelink.repos.mongo import MongoRepo
    _repo_singleton = MongoRepo(get_db())
else:
    from hopelink.repos.inmemory import InMemoryRepo
    _repo_singleton = InMemoryRepo()

def get_repo():
    return _repo_singleton
