"""Script entry point for running the corrector from a repository checkout.

``python process_photos.py [OPTIONS] [input_directory] [output_suffix]`` is
equivalent to the installed ``photo-batch-corrector`` command; the
implementation lives in :mod:`photo_batch_corrector.cli`.
"""
from __future__ import annotations

from photo_batch_corrector.cli import main


if __name__ == "__main__":  # pragma: no cover - exercised via integration test
    raise SystemExit(main())
