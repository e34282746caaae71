from slowapi import Limiter
from slowapi.util import get_remote_address

# Rate limiter (routes publiques)
limiter = Limiter(key_func=get_remote_address)
