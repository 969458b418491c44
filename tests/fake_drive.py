"""
Servicio de Google Drive en memoria para los tests
"""
import itertools
import re
from datetime import datetime, timedelta, timezone

import httplib2
from googleapiclient.errors import HttpError

QUERY_PATTERN = re.compile(r"^'(?P<folder>.*?)' in parents and name contains '(?P<prefix>.*?)' and trashed = false$")

BASE_TIME = datetime(2025, 8, 1, 2, 0, tzinfo=timezone.utc)


def http_error(status: int) -> HttpError:
    """Crea un HttpError con el status indicado"""
    content = ('{"error": {"code": %d, "message": "fake error %d"}}' % (status, status)).encode("utf-8")
    return HttpError(httplib2.Response({"status": status}), content)


def iso(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"


class _Request:
    def __init__(self, drive, operation, fn):
        self._drive = drive
        self._operation = operation
        self._fn = fn

    def execute(self):
        self._drive.calls.append(self._operation)
        error = self._drive.errors.get(self._operation)
        if error is not None:
            raise error
        return self._fn()


class _UploadRequest:
    def __init__(self, drive, body, media):
        self._drive = drive
        self._body = body
        self._media = media

    def next_chunk(self):
        self._drive.calls.append("upload")
        error = self._drive.errors.get("upload")
        if error is not None:
            raise error

        # Leer por bloques como lo hace la subida reanudable
        stream = self._media.stream()
        total = 0
        while True:
            chunk = stream.read(self._media.chunksize())
            if not chunk:
                break
            total += len(chunk)

        folder = self._body["parents"][0]
        file_id = self._drive.add_file(folder, self._body["name"], created=self._drive.now(), size=total)
        item = dict(self._drive.files_by_id[file_id])
        item.pop("parents")
        item.pop("trashed")
        return None, item


class _Files:
    def __init__(self, drive):
        self._drive = drive

    def list(self, q, spaces=None, fields=None, orderBy=None, pageSize=100, pageToken=None):
        def run():
            match = QUERY_PATTERN.match(q)
            assert match, f"Consulta inesperada: {q}"
            folder, prefix = match.group("folder"), match.group("prefix")
            items = [
                f for f in self._drive.files_by_id.values()
                if folder in f["parents"] and prefix in f["name"] and not f["trashed"]
            ]
            items.sort(key=lambda f: f["createdTime"])
            offset = int(pageToken or 0)
            page = items[offset:offset + pageSize]
            self._drive.list_pages += 1
            response = {"files": [
                {k: v for k, v in f.items() if k not in ("parents", "trashed")} for f in page
            ]}
            if offset + pageSize < len(items):
                response["nextPageToken"] = str(offset + pageSize)
            return response
        return _Request(self._drive, "list", run)

    def create(self, body, media_body, fields=None):
        return _UploadRequest(self._drive, body, media_body)

    def delete(self, fileId):
        def run():
            if fileId not in self._drive.files_by_id:
                raise http_error(404)
            del self._drive.files_by_id[fileId]
            self._drive.deleted.append(fileId)
            return ""
        return _Request(self._drive, "delete", run)


class FakeDriveService:
    """Imita el recurso de googleapiclient para Drive v3"""

    def __init__(self):
        self.files_by_id = {}
        self.calls = []
        self.deleted = []
        self.errors = {}
        self.list_pages = 0
        self._ids = itertools.count(1)
        self._clock = itertools.count(1000)

    def files(self):
        return _Files(self)

    def now(self) -> datetime:
        return BASE_TIME + timedelta(hours=next(self._clock))

    def add_file(self, folder, name, created=None, size=1024, trashed=False) -> str:
        file_id = f"file-{next(self._ids)}"
        self.files_by_id[file_id] = {
            "id": file_id,
            "name": name,
            "createdTime": iso(created or self.now()),
            "size": str(size),
            "webViewLink": f"https://drive.google.com/file/d/{file_id}/view",
            "parents": [folder],
            "trashed": trashed,
        }
        return file_id

    def names_in(self, folder):
        return sorted(
            f["name"] for f in self.files_by_id.values()
            if folder in f["parents"] and not f["trashed"]
        )

    def seed(self, folder, count, prefix="panglao_tdms_backup_daily_"):
        """Crea ``count`` backups con fechas de creación crecientes"""
        return [
            self.add_file(folder, f"{prefix}{i:03d}.dump", created=BASE_TIME + timedelta(days=i))
            for i in range(count)
        ]
