"""MLStudio CLI - Command Line Interface.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, List, Optional

from mlstudio_core.config import EngineConfig
from mlstudio_core.model.families import model_templates
from mlstudio_core.model.registry import ModelVersion, ModelVersionStore
from mlstudio_core.stores.local import FileModelStore, LocalDatasetStore
from mlstudio_core.stores.memory import InMemoryPipelineStore
from mlstudio_core.training.engine import TrainingEngine, TrainingRequest
from mlstudio_core.training.progress import ProgressEvent
from mlstudio_core.utils.serialization import JSONSerializer

logger = logging.getLogger(__name__)

DEFAULT_STORE = ".mlstudio"


class CLI:
    """MLStudio CLI.

    Commands:
    - train: Train a model on a local dataset file
    - models: Model version operations
    - templates: List model types and their default parameters
    """

    def __init__(self):
        self.parser = argparse.ArgumentParser(
            prog="mlstudio",
            description="MLStudio - Model Training and Versioning",
        )
        self.parser.add_argument("--log-level", default="INFO", help="Logging level")
        self._serializer = JSONSerializer(indent=2)
        self._setup_parsers()

    def _setup_parsers(self):
        """Setup command parsers."""
        subparsers = self.parser.add_subparsers(dest="command", help="Commands")

        # Train command
        train_parser = subparsers.add_parser("train", help="Train a model")
        train_parser.add_argument("file", help="Dataset file (csv, json, image or zip)")
        train_parser.add_argument("--model-type", required=True, help="Model type")
        train_parser.add_argument("--params", type=str, help="JSON hyperparameters")
        train_parser.add_argument("--pipeline", type=str, help="JSON file with transform steps")
        train_parser.add_argument("--label-column", type=str, help="Label column")
        train_parser.add_argument("--test-size", type=float)
        train_parser.add_argument("--validation-size", type=float)
        train_parser.add_argument("--random-state", type=int)
        train_parser.add_argument("--name", type=str, help="Model name")
        train_parser.add_argument("--format", choices=["csv", "json", "image", "zip"])
        train_parser.add_argument("--store", default=DEFAULT_STORE, help="Model store directory")
        train_parser.add_argument("--config", type=str, help="Engine config file path")

        # Model commands
        models_parser = subparsers.add_parser("models", help="Model version operations")
        models_parser.add_argument("--store", default=DEFAULT_STORE, help="Model store directory")
        models_sub = models_parser.add_subparsers(dest="models_cmd")

        models_sub.add_parser("list", help="List models")

        show_parser = models_sub.add_parser("show", help="Show a model")
        show_parser.add_argument("model_id", help="Model ID")

        compare_parser = models_sub.add_parser("compare", help="Compare models")
        compare_parser.add_argument("model_ids", nargs="*", help="Model IDs")

        clone_parser = models_sub.add_parser("clone", help="Clone a model for retraining")
        clone_parser.add_argument("model_id", help="Model ID")
        clone_parser.add_argument("name", help="Name of the clone")
        clone_parser.add_argument("--params", type=str, help="JSON hyperparameters")

        delete_parser = models_sub.add_parser("delete", help="Delete a model")
        delete_parser.add_argument("model_id", help="Model ID")

        export_parser = models_sub.add_parser("export", help="Export a model")
        export_parser.add_argument("model_id", help="Model ID")
        export_parser.add_argument("--format", choices=["json", "native"], default="json")
        export_parser.add_argument("--output", type=str, help="Output file")

        models_sub.add_parser("stats", help="Model statistics")

        # Templates command
        subparsers.add_parser("templates", help="List model types")

    def run(self, args: Optional[List[str]] = None) -> int:
        """Run CLI command."""
        parsed = self.parser.parse_args(args)
        logging.getLogger().setLevel(parsed.log_level.upper())

        if not parsed.command:
            self.parser.print_help()
            return 0

        try:
            if parsed.command == "train":
                return self._handle_train(parsed)
            elif parsed.command == "models":
                return self._handle_models(parsed)
            elif parsed.command == "templates":
                return self._handle_templates(parsed)
            else:
                self.parser.print_help()
                return 1
        except Exception as e:
            logger.error(f"Error: {e}")
            return 1

    def _print(self, obj: Any) -> None:
        print(self._serializer.serialize(obj).decode("utf-8"))

    def _summary(self, model: ModelVersion) -> dict:
        return {
            "id": model.id,
            "name": model.name,
            "version": model.version,
            "modelType": model.model_type,
            "status": model.status.value,
            "loss": model.metrics.loss,
            "accuracy": model.metrics.accuracy,
            "parentModelId": model.parent_model_id,
            "isLatestVersion": model.is_latest_version,
        }

    def _versions(self, store_dir: str) -> ModelVersionStore:
        versions = ModelVersionStore(FileModelStore(store_dir))
        versions.sync()
        return versions

    def _handle_train(self, args) -> int:
        """Handle train command."""
        config = EngineConfig.from_file(args.config) if args.config else EngineConfig()

        datasets = LocalDatasetStore()
        metadata = {"format": args.format} if args.format else {}
        dataset_id = datasets.add_file(args.file, metadata)

        pipelines = InMemoryPipelineStore()
        pipeline_id = None
        if args.pipeline:
            steps = json.loads(Path(args.pipeline).read_text(encoding="utf-8"))
            if isinstance(steps, dict):
                steps = steps.get("steps", [])
            pipeline_id = pipelines.add_pipeline(Path(args.pipeline).stem, steps)

        versions = self._versions(args.store)
        engine = TrainingEngine(
            datasets,
            pipeline_store=pipelines,
            config=config,
            versions=versions,
        )
        request = TrainingRequest(
            dataset_id=dataset_id,
            model_type=args.model_type,
            model_parameters=json.loads(args.params) if args.params else {},
            pipeline_id=pipeline_id,
            test_size=args.test_size,
            validation_size=args.validation_size,
            random_state=args.random_state,
            name=args.name,
            label_column=args.label_column,
        )

        def on_progress(event: ProgressEvent) -> None:
            print(f"[{event.percent:3d}%] {event.message}", file=sys.stderr)

        model = engine.start_training(request, on_progress=on_progress)
        self._print({**self._summary(model), "metrics": model.metrics.to_record()})
        return 0

    def _handle_models(self, args) -> int:
        """Handle model commands."""
        versions = self._versions(args.store)

        if args.models_cmd == "list":
            self._print([self._summary(m) for m in versions.list_models()])
            return 0
        elif args.models_cmd == "show":
            record = versions.require(args.model_id).to_record()
            record.pop("modelData", None)
            self._print(record)
            return 0
        elif args.models_cmd == "compare":
            self._print(versions.compare(args.model_ids).to_dict())
            return 0
        elif args.models_cmd == "clone":
            params = json.loads(args.params) if args.params else None
            self._print(self._summary(versions.clone(args.model_id, args.name, params)))
            return 0
        elif args.models_cmd == "delete":
            versions.delete(args.model_id)
            print(f"Deleted model: {args.model_id}")
            return 0
        elif args.models_cmd == "export":
            exported = versions.export(args.model_id, args.format)
            if isinstance(exported, bytes):
                if not args.output:
                    logger.error("Native export needs --output")
                    return 1
                Path(args.output).write_bytes(exported)
            elif args.output:
                self._serializer.to_file(exported, args.output)
            else:
                self._print(exported)
            if args.output:
                print(f"Exported {args.model_id} to {args.output}")
            return 0
        elif args.models_cmd == "stats":
            stats = versions.statistics()
            self._print({
                "totalModels": stats.total_models,
                "modelsByType": stats.models_by_type,
                "modelsByStatus": stats.models_by_status,
                "averageAccuracy": stats.average_accuracy,
                "averageLoss": stats.average_loss,
                "averageTrainingTime": stats.average_training_time,
                "bestModel": stats.best_model.id if stats.best_model else None,
            })
            return 0
        return 1

    def _handle_templates(self, args) -> int:
        """Handle templates command."""
        for template in model_templates():
            marker = "" if template.supported else " (not supported)"
            print(f"{template.family.value:<22} {template.name}{marker}")
            print(f"  {template.description}")
        return 0


def main():
    """CLI entry point."""
    logging.basicConfig(level=logging.INFO)
    cli = CLI()
    sys.exit(cli.run())


if __name__ == "__main__":
    main()
