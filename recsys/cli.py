from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import asdict
from typing import Any, Dict, List, Optional  # noqa: UP035

from recsys.config.settings import settings
from recsys.data.schemas import ModelRecord
from recsys.errors import RecsysError
from recsys.service.recommender_service import RecsysService, ServiceConfig


def _record_dict(rec: ModelRecord) -> Dict[str, Any]:
    out = asdict(rec)
    out["status"] = rec.status.value
    out["updated_at"] = rec.updated_at.isoformat() if rec.updated_at else None
    return out


def _add_dataset_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--dataset", required=True, help="Interaction table name")
    p.add_argument("--user-column", default="user_id")
    p.add_argument("--item-column", default="item_id")


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="recsys", description="Item-embedding recommender")
    ap.add_argument("--db", default=str(settings.DUCKDB_PATH), help="DuckDB file")
    sub = ap.add_subparsers(dest="command", required=True)

    p = sub.add_parser("load", help="Load a Parquet/CSV interaction file into a table")
    p.add_argument("--input", required=True)
    p.add_argument("--table", default="interactions")

    p = sub.add_parser("register", help="Register a model (optionally with a weights path)")
    p.add_argument("--model-id", type=int, required=True)
    p.add_argument("--weights-path", default=None)

    p = sub.add_parser("train", help="Train item embeddings for a model")
    p.add_argument("--model-id", type=int, required=True)
    _add_dataset_args(p)
    p.add_argument("--policy", default=settings.TRAIN_POLICY, choices=["random", "als", "pretrained"])
    p.add_argument("--seed", type=int, default=settings.RANDOM_SEED)

    p = sub.add_parser("recommend", help="Top-k items for a user")
    p.add_argument("--model-id", type=int, required=True)
    p.add_argument("--user-id", required=True)
    _add_dataset_args(p)
    p.add_argument("--k", type=int, default=10)
    p.add_argument("--min-score", type=float, default=0.0)
    p.add_argument("--exclude-seen", action="store_true")

    p = sub.add_parser("status", help="Show one model, or all models")
    p.add_argument("--model-id", type=int, default=None)

    p = sub.add_parser("export", help="Export a model's embeddings to a Parquet weights file")
    p.add_argument("--model-id", type=int, required=True)
    p.add_argument("--output", required=True)

    return ap


def run(args: argparse.Namespace) -> Dict[str, Any]:
    cfg = ServiceConfig.from_settings()
    cfg.duckdb_path = args.db
    if args.command == "train":
        cfg.seed = args.seed
        cfg.show_progress = True

    svc = RecsysService(cfg).load()
    try:
        if args.command == "load":
            n = svc.load_dataset(args.table, args.input)
            return {"table": args.table, "rows": n}

        if args.command == "register":
            rec = svc.register_model(args.model_id, args.weights_path)
            return _record_dict(rec)

        if args.command == "train":
            print(f"[START] Training model {args.model_id} on {args.dataset} (policy={args.policy})")
            svc.train(args.dataset, args.user_column, args.item_column, args.model_id, policy=args.policy)
            print("[OK] Training finished.")
            out = _record_dict(svc.get_model(args.model_id))
            out["items"] = svc.store.count(args.model_id)
            return out

        if args.command == "recommend":
            recs = svc.recommend(
                model_id=args.model_id,
                user_id=args.user_id,
                dataset=args.dataset,
                user_column=args.user_column,
                item_column=args.item_column,
                top_k=args.k,
                min_score=args.min_score,
                exclude_seen=args.exclude_seen,
            )
            return {
                "model_id": args.model_id,
                "user_id": args.user_id,
                "recommendations": [{"item_id": r.item_id, "score": r.score} for r in recs],
            }

        if args.command == "status":
            if args.model_id is not None:
                return _record_dict(svc.get_model(args.model_id))
            models: List[Dict[str, Any]] = [_record_dict(m) for m in svc.list_models()]
            return {"models": models}

        if args.command == "export":
            n = svc.export_weights(args.model_id, args.output)
            return {"model_id": args.model_id, "output": args.output, "rows": n}

        raise ValueError(f"Unknown command: {args.command}")
    finally:
        svc.close()


def main(argv: Optional[List[str]] = None) -> int:  # noqa: UP045
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    args = build_parser().parse_args(argv)
    try:
        summary = run(args)
    except (RecsysError, ValueError) as e:
        print(f"[ERROR] {type(e).__name__}: {e}", file=sys.stderr)
        return 1

    print(json.dumps(summary, indent=2))
    print("[DONE]")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
