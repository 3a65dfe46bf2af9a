"""Constants for the multipart upload client."""

import os

API_ENDPOINT = os.getenv("MPU_ENDPOINT", "https://tos-cn-beijing.volces.com")

HEADER_ETAG = "ETag"
HEADER_REQUEST_ID = "x-tos-request-id"
HEADER_HOST_ID = "x-tos-id-2"
HEADER_VERSION_ID = "x-tos-version-id"
HEADER_HASH_CRC64ECMA = "x-tos-hash-crc64ecma"
HEADER_CONTENT_LENGTH = "Content-Length"
HEADER_CONTENT_TYPE = "Content-Type"
HEADER_META_PREFIX = "x-tos-meta-"

QUERY_UPLOADS = "uploads"
QUERY_UPLOAD_ID = "uploadId"
QUERY_PART_NUMBER = "partNumber"
QUERY_MAX_PARTS = "max-parts"
QUERY_PART_NUMBER_MARKER = "part-number-marker"
QUERY_PREFIX = "prefix"
QUERY_DELIMITER = "delimiter"
QUERY_KEY_MARKER = "key-marker"
QUERY_UPLOAD_ID_MARKER = "upload-id-marker"
QUERY_MAX_UPLOADS = "max-uploads"

DEFAULT_REQUEST_TIMEOUT_SECONDS = 60
DEFAULT_MAX_RETRY_COUNT = 3
DEFAULT_RETRY_BASE_DELAY_SECONDS = 1.0
DEFAULT_MAX_BACKOFF_SECONDS = 300

# Broad set, only used when the request body can be rewound.
RETRYABLE_STATUS_CODES = {408, 429, 500, 502, 503, 504}
# Server faults where the request was answered by the service itself.
SERVER_FAULT_STATUS_CODES = {429, 500, 502, 503, 504}

STATUS_OK = 200
STATUS_NO_CONTENT = 204
STATUS_NOT_FOUND = 404

READ_BLOCK_SIZE = 64 * 1024
