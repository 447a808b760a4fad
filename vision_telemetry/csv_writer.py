import csv
import io

import numpy as np

from .estimator import PoseSnapshot
from .transforms import pose_to_rvec_tvec


class PoseCsvWriter:
    HEADER = [
        "recorded_at",
        "cycle", "entry", "has_data",
        "timestamp_s", "latency_ms", "tag_count",
        "min_ambiguity", "avg_ambiguity", "accepted",
        "rvec_x", "rvec_y", "rvec_z",
        "tvec_x", "tvec_y", "tvec_z",
        "tag_ids",
    ]

    def __init__(self, csv_path: str):
        self.csv_path = csv_path
        self._opened = False
        self._fh = None
        self._w = None

    def open(self):
        self._fh = open(self.csv_path, "w", newline="")
        self._w = csv.writer(self._fh)
        self._w.writerow(self.HEADER)
        self._opened = True

    @staticmethod
    def row(ts_unix, cycle, entry, snapshot, accepted=False):
        if snapshot is None:
            nan3 = [float("nan")] * 3
            return [
                f"{ts_unix:.6f}", cycle, entry, 0,
                "", "", 0,
                "", "", 0,
                *nan3, *nan3,
                "",
            ]
        rvec, tvec = pose_to_rvec_tvec(snapshot.pose)
        r = np.asarray(rvec).reshape(-1).tolist()
        t = np.asarray(tvec).reshape(-1).tolist()
        return [
            f"{ts_unix:.6f}",
            cycle, entry, int(snapshot.has_data),
            f"{snapshot.timestamp_seconds:.6f}",
            f"{snapshot.latency_ms:.3f}",
            snapshot.tag_count,
            f"{snapshot.get_min_tag_ambiguity():.4f}",
            f"{snapshot.get_avg_tag_ambiguity():.4f}",
            int(accepted),
            *r, *t,
            " ".join(str(i) for i in snapshot.fiducials.ids()),
        ]

    def append(self, ts_unix: float, cycle: int, entry: str, snapshot: PoseSnapshot | None, accepted: bool = False):
        self._w.writerow(self.row(ts_unix, cycle, entry, snapshot, accepted))

    @classmethod
    def to_csv_line(cls, ts_unix, cycle, entry, snapshot, accepted=False):
        buf = io.StringIO()
        w = csv.writer(buf)
        w.writerow(cls.row(ts_unix, cycle, entry, snapshot, accepted))
        return buf.getvalue().strip()

    def close(self):
        if self._opened and self._fh:
            self._fh.close()
            self._opened = False
            self._fh = None
            self._w = None
