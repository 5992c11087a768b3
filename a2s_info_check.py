import logging
import sys

from srcquery import query

logging.basicConfig(level=logging.DEBUG)

address = sys.argv[1] if len(sys.argv) > 1 else '46.174.52.15:27333'
info = query(address, timeout=10)

print(info.to_dict())
