import numpy as np
import pandas as pd
import pytest


def make_electrolyte_frame(n_rows: int = 20) -> pd.DataFrame:
    """Synthetic table laid out like the published dataset (extra columns included)."""
    znbr2 = np.linspace(0.5, 3.0, n_rows)
    zncl2 = np.tile([0.0, 0.5, 1.0, 1.5, 2.0], n_rows // 5 + 1)[:n_rows]
    ph = 4.5 - 0.8 * znbr2 - 0.5 * zncl2 + 0.05 * np.sin(np.arange(n_rows))
    return pd.DataFrame({
        "Sample": [f"S{i:02d}" for i in range(n_rows)],
        "ZnBr2saltM": znbr2,
        "ZnCl2saltM": zncl2,
        "Conductivity": 100.0 + 10.0 * znbr2,
        "pH": ph,
    })


@pytest.fixture
def electrolyte_frame():
    return make_electrolyte_frame(20)


@pytest.fixture
def electrolyte_csv(tmp_path, electrolyte_frame):
    """Path to a 20-row CSV file with the default column names."""
    path = tmp_path / "electrolyte.csv"
    electrolyte_frame.to_csv(path, index=False)
    return str(path)


@pytest.fixture
def fast_training():
    """Trainer settings that keep resampling rounds short on the small tables."""
    return {
        "n_rounds": 2,
        "threshold": 0.5,
        "max_steps": 20000,
    }
