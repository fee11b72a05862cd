"""
Benchmark / evaluation configuration stored as JSON
"""

import json
from pathlib import Path
from typing import Any, Dict, Optional, Union

CONFIG_FILE = Path.home() / ".tensor_codecs_config.json"


def get_default_config() -> Dict[str, Any]:
    """Get default configuration"""
    return {
        "verbose": False,
        "seed": 12345,

        # quantize-bench
        "num_arrays": 10,
        "array_length": 4096,
        "min_value": -10.0,
        "max_value": 10.0,
        "quantization_types": ["Q8_0", "Q4_0"],

        # sparsity-bench
        "num_tokens": 512,
        "num_features": 1024,
        "sparse_ratios": [0.15, 0.05],

        # evaluate
        "evaluate_sparse_ratios": [0.25, 0.125],

        # top-k worker pool
        "parallel": True,
        "num_workers": None,  # None = CPU cores - 1
    }


def _resolve(path: Optional[Union[str, Path]]) -> Path:
    return Path(path) if path is not None else CONFIG_FILE


def load_config(path: Optional[Union[str, Path]] = None) -> Dict[str, Any]:
    """Load configuration from file, falling back to defaults"""
    config_file = _resolve(path)
    if config_file.exists():
        try:
            with open(config_file, 'r') as f:
                saved_config = json.load(f)

            config = get_default_config()
            config.update(saved_config)
            return config
        except (OSError, ValueError) as e:
            print(f"Warning: Could not load config: {e}", flush=True)
            return get_default_config()
    return get_default_config()


def save_config(config: Dict[str, Any], path: Optional[Union[str, Path]] = None) -> None:
    """Save configuration to file"""
    try:
        with open(_resolve(path), 'w') as f:
            json.dump(config, f, indent=2)
    except OSError as e:
        print(f"Warning: Could not save config: {e}", flush=True)


def reset_config(path: Optional[Union[str, Path]] = None) -> Dict[str, Any]:
    """Reset configuration to defaults"""
    config = get_default_config()
    save_config(config, path)
    return config
