"""
The storage driver for S3-compatible object storage (AWS S3, Aliyun OSS, Tencent COS, Huawei OBS,
MinIO, ...), built on boto3.

Object stores have no real directories; this driver presents ``/``-delimited key prefixes as
directories.
"""
import logging

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError, BotoCoreError

from ..models import FileEntry, EntryKind, DirectoryListing, ListOptions
from ..exceptions import *
from ..adapters import OSSAdapter
from ..transport import range_header
from .base import StorageBackend, StreamChunks, DEF_STREAM_CHUNK

_virtual_host_domains = ("aliyuncs.com", "myqcloud.com", "myhuaweicloud.com")

class OSSBackend(StorageBackend):
    """
    a driver for one bucket (optionally restricted to a key prefix) in an S3-compatible store.
    The connection parameters are those produced by
    :py:meth:`~unistore.storage.adapters.OSSAdapter.preprocess_connection`.
    """

    def __init__(self, conn, config=None, log: logging.Logger=None, s3client=None):
        super(OSSBackend, self).__init__(conn, config, log)
        self.bucket = conn.get('bucket')
        self.prefix = conn.get('path_prefix') or ''
        self.adapter = OSSAdapter()
        self.default_page_size = 100
        self._s3 = s3client

    def _make_client(self):
        host = self.conn.get('host') or ''
        style = "virtual" if any(d in host for d in _virtual_host_domains) else "path"
        tcfg = self.cfg.get('transport', {})
        botocfg = Config(signature_version="s3v4", s3={ "addressing_style": style },
                         connect_timeout=tcfg.get('timeout', 30), read_timeout=tcfg.get('timeout', 30),
                         retries={ "max_attempts": int(tcfg.get('retries', 0)) + 1 })
        return boto3.client("s3", endpoint_url=self.conn.get('endpoint'),
                            region_name=self.conn.get('region'),
                            aws_access_key_id=self.conn.get('username'),
                            aws_secret_access_key=self.conn.get('password'),
                            verify=tcfg.get('verify', True), config=botocfg)

    @property
    def s3(self):
        if self._s3 is None:
            self._s3 = self._make_client()
        return self._s3

    def _key(self, path):
        return self.adapter.object_key(path, self.conn)

    def _relpath(self, key):
        if self.prefix and key.startswith(self.prefix):
            key = key[len(self.prefix):]
        return key

    def _wrap(self, ex, key):
        """
        convert a boto exception into the corresponding storage exception
        """
        ep = f"oss://{self.bucket}/{key}"
        if isinstance(ex, ClientError):
            err = ex.response.get('Error', {})
            errcode = str(err.get('Code', ''))
            status = ex.response.get('ResponseMetadata', {}).get('HTTPStatusCode') or 0
            msg = err.get('Message') or str(ex)
            if errcode in ("NoSuchKey", "NoSuchBucket", "404", "NotFound") or status == 404:
                return StorageResourceNotFound(ep, f"{ep}: not found ({errcode})")
            if errcode in ("AccessDenied", "InvalidAccessKeyId", "SignatureDoesNotMatch", "403") \
               or status in (401, 403):
                return StorageUserUnauthorized(ep, f"{ep}: access denied ({msg})", code=status or 403)
            if errcode == "InvalidRange" or status == 416:
                return RangeNotSatisfiable(ep)
            if status >= 500:
                return StorageServerError(status, ep, msg)
            return StorageClientError(f"{ep}: {errcode}: {msg}", status, ep)
        return StorageCommError(f"Object storage communication failure: {str(ex)}", ep, ex)

    def connect(self):
        try:
            self.s3.head_bucket(Bucket=self.bucket)
        except (ClientError, BotoCoreError) as ex:
            raise self._wrap(ex, '') from ex
        self.log.info("Connected to bucket %s at %s", self.bucket, self.conn.get('endpoint') or "AWS")

    def disconnect(self):
        if self._s3 is not None:
            close = getattr(self._s3, "close", None)
            if close:
                close()
            self._s3 = None

    def list_directory(self, path, options: ListOptions=None):
        if options is None:
            options = ListOptions()
        dirkey = self._key(path.strip('/') + '/') if path.strip('/') else self.prefix
        if options.prefix:
            dirkey += options.prefix

        params = { "Bucket": self.bucket, "Prefix": dirkey,
                   "MaxKeys": options.page_size or self.default_page_size }
        if not options.recursive:
            params['Delimiter'] = '/'
        if options.marker:
            params['ContinuationToken'] = options.marker

        try:
            resp = self.s3.list_objects_v2(**params)
        except (ClientError, BotoCoreError) as ex:
            raise self._wrap(ex, dirkey) from ex

        entries = []
        for cp in resp.get('CommonPrefixes', []):
            relpath = self._relpath(cp['Prefix']).rstrip('/')
            if relpath:
                entries.append(FileEntry(relpath, EntryKind.DIRECTORY))
        for obj in resp.get('Contents', []):
            if obj['Key'] == dirkey or obj['Key'].endswith('/'):
                # directory placeholder objects
                continue
            entries.append(FileEntry(self._relpath(obj['Key']), EntryKind.FILE, size=obj.get('Size', 0),
                                     modified=obj.get('LastModified'),
                                     etag=(obj.get('ETag') or '').strip('"') or None))

        return DirectoryListing(entries, path, has_more=bool(resp.get('IsTruncated')),
                                next_marker=resp.get('NextContinuationToken'),
                                total_count=resp.get('KeyCount'))

    def _get_object(self, key, start=None, length=None):
        params = { "Bucket": self.bucket, "Key": key }
        if start is not None:
            params['Range'] = range_header(start, length)
        return self.s3.get_object(**params)

    def read_range(self, path, start=None, length=None):
        key = self._key(path)
        try:
            resp = self._get_object(key, start, length)
            return resp['Body'].read()
        except (ClientError, BotoCoreError) as ex:
            err = self._wrap(ex, key)
            if isinstance(err, RangeNotSatisfiable):
                return b''
            raise err from ex

    def get_size(self, path):
        key = self._key(path)
        try:
            resp = self.s3.head_object(Bucket=self.bucket, Key=key)
        except (ClientError, BotoCoreError) as ex:
            raise self._wrap(ex, key) from ex
        if resp.get('ContentLength') is None:
            raise SizeUnavailable(path)
        return int(resp['ContentLength'])

    def open_stream(self, path, chunk_size=DEF_STREAM_CHUNK):
        key = self._key(path)
        try:
            resp = self._get_object(key)
        except (ClientError, BotoCoreError) as ex:
            raise self._wrap(ex, key) from ex
        body = resp['Body']

        def chunks():
            try:
                for chunk in body.iter_chunks(chunk_size):
                    yield chunk
            except (ClientError, BotoCoreError) as ex:
                raise self._wrap(ex, key) from ex
            finally:
                body.close()

        return (resp.get('ContentLength'), StreamChunks(chunks(), body))
