"""
Model Training Script

Trains a scikit-learn classifier for one risk type from labelled history.
Usage: python -m agrisentinel.scripts.train_model --risk drought --data history.csv [--output models/drought_rf.pkl]

The CSV holds one row per historical feature snapshot, with feature columns
named as the aggregator names them and a 0/1 `label` column.
"""
import argparse
import sys

import pandas as pd

from agrisentinel.domain.enums import RiskType
from agrisentinel.ml.model_adapters import SklearnClassifierModel


def train_risk_model(risk_type: RiskType, data_path: str, output_path: str):
    """
    Train and save a classifier.

    Args:
        risk_type: Risk type the classifier predicts
        data_path: CSV of labelled feature snapshots
        output_path: Where the model pickle is written
    """
    print(f"\n=== Training {risk_type.value} classifier ===")

    print("\n1. Loading training data...")
    data = pd.read_csv(data_path)
    if "label" not in data.columns or len(data) == 0:
        print(f"\nERROR: {data_path} has no rows or no 'label' column.")
        sys.exit(1)

    y = data["label"].astype(int)
    X = data.drop(columns=["label"]).select_dtypes("number").fillna(0.0)

    print(f"   ✓ Training samples: {len(X)}")
    print(f"   ✓ Features: {len(X.columns)}")
    print(f"   ✓ Positive cases: {y.sum()} ({y.sum()/len(y)*100:.1f}%)")

    print("\n2. Training model...")
    model = SklearnClassifierModel(output_path)
    metrics = model.train_model(X, y, risk_type)

    print(f"\n   ✓ Model trained successfully!")
    print(f"   Accuracy:  {metrics['accuracy']:.2%}")
    print(f"   Precision: {metrics['precision']:.2%}")
    print(f"   Recall:    {metrics['recall']:.2%}")
    print(f"   F1 Score:  {metrics['f1_score']:.2%}")

    print("\n3. Saving model...")
    model.save_model()
    print(f"   ✓ Model saved to {output_path}")
    print(f"\nAdd '{model.model_id}' to AGRISENTINEL_ACTIVE_MODELS and point "
          f"AGRISENTINEL_MODEL_DIR at its directory to use it.")


def main():
    """CLI entry point"""
    parser = argparse.ArgumentParser(description="Train a risk classifier")
    parser.add_argument(
        "--risk",
        "-r",
        required=True,
        choices=[risk.value for risk in RiskType],
        help="Risk type to predict"
    )
    parser.add_argument("--data", "-d", required=True, help="Labelled CSV of feature snapshots")
    parser.add_argument("--output", "-o", help="Model output path (default: models/<risk>_rf.pkl)")

    args = parser.parse_args()
    output = args.output or f"models/{args.risk}_rf.pkl"
    train_risk_model(RiskType(args.risk), args.data, output)


if __name__ == "__main__":
    main()
