from logs.discovery import LogDiscovery, is_archive, is_log_file
from logs.parsing import parse_level, parse_timestamp, sentinel_timestamp
from logs.search import LogSearch
from logs.searchers import TextSearcher, default_searchers
from logs.stream import follow, stream_log
