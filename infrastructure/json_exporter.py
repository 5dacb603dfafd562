from __future__ import annotations

import json
import os

from domain.job import BatchJob


def save_json(job: BatchJob, output_path: str) -> str:
    os.makedirs(os.path.dirname(output_path) or ".", exist_ok=True)
    with open(output_path, "w", encoding="utf-8") as f:
        f.write(json.dumps(job.report(), indent=2, ensure_ascii=False))
    return output_path
