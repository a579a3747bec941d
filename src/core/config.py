"""
Configuration management for the preventive health analysis engine
"""

import copy
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from dotenv import load_dotenv


# Base paths
BASE_DIR = Path(__file__).parent.parent.parent

load_dotenv(BASE_DIR / ".env")

logger = logging.getLogger(__name__)


class Config:
    """Main configuration class for the analysis engine"""

    SECTIONS = (
        'trend', 'gap', 'followup', 'risk', 'recommendation',
        'explanation', 'guidelines', 'engine', 'api', 'logging',
    )

    def __init__(self):
        # Trend Detector
        self.trend_config = {
            'smoothing_window': 3,
            'significance_alpha': 0.05,
            'min_points': 3,
            'rapid_change_fraction': 0.20,  # relative change
            'rapid_change_window_months': 3,
            'leverage_ratio': 0.25,  # slope kept without any single point
            'confidence_scale': 0.10,  # residual CV at which fit confidence halves
            # parameter -> annual absolute rate of change for moderate/high
            'clinical_thresholds': {
                'hba1c': {'moderate': 0.2, 'high': 0.5, 'adverse': 'increasing'},
                'fasting_glucose': {'moderate': 5.0, 'high': 10.0, 'adverse': 'increasing'},
                'ldl_cholesterol': {'moderate': 10.0, 'high': 25.0, 'adverse': 'increasing'},
                'hdl_cholesterol': {'moderate': 3.0, 'high': 8.0, 'adverse': 'decreasing'},
                'total_cholesterol': {'moderate': 15.0, 'high': 30.0, 'adverse': 'increasing'},
                'triglycerides': {'moderate': 20.0, 'high': 50.0, 'adverse': 'increasing'},
                'systolic_bp': {'moderate': 5.0, 'high': 10.0, 'adverse': 'increasing'},
                'diastolic_bp': {'moderate': 3.0, 'high': 7.0, 'adverse': 'increasing'},
                'egfr': {'moderate': 3.0, 'high': 5.0, 'adverse': 'decreasing'},
                'creatinine': {'moderate': 0.1, 'high': 0.3, 'adverse': 'increasing'},
                'psa': {'moderate': 0.35, 'high': 0.75, 'adverse': 'increasing'},
                'bmi': {'moderate': 1.0, 'high': 2.5, 'adverse': 'increasing'},
                'weight': {'moderate': 3.0, 'high': 7.0, 'adverse': 'increasing'},
            },
            # relative annual change (fraction of mean) for unlisted parameters
            'default_relative_thresholds': {'moderate': 0.10, 'high': 0.25},
            # trend signal severity by significance, scaled by confidence
            'severity_by_significance': {'low': 25.0, 'moderate': 55.0, 'high': 85.0},
        }

        # Gap Detector
        self.gap_config = {
            # test type or category -> weight; test type wins
            'risk_weights': {
                'cancer_screening': 3.0,
                'diabetes': 2.5,
                'cardiovascular': 2.5,
                'general_wellness': 1.0,
            },
            'default_risk_weight': 1.0,
            'priority_thresholds': {'high': 2.0, 'moderate': 0.75},
            'score_at_max_severity': 3.0,  # priority score mapped to severity 100
        }

        # Follow-up Detector
        self.followup_config = {
            'base_severity': 40.0,
            'full_severity_days': 180,  # days overdue at which severity reaches 100
        }

        # Risk Aggregator
        self.risk_config = {
            'weights': {
                'absence': 0.4,
                'trend': 0.3,
                'followup': 0.2,
                'demographic': 0.1,
            },
            # lower bounds, inclusive
            'tiers': {'moderate': 30.0, 'high': 60.0},
            'conservative_severity': 75.0,
            'demographic': {
                'age_floor': 30,
                'points_per_year': 1.0,
                'age_cap': 50.0,
                'points_per_risk_factor': 15.0,
            },
        }

        # Recommendation Generator
        self.recommendation_config = {
            'urgent_min_risk_weight': 2.5,
        }

        # Explanation Builder
        self.explanation_config = {
            'max_reading_grade': 8.0,
        }

        # Guidelines Database
        self.guidelines_config = {
            'relaxation_order': ['risk_factors', 'age_range'],
        }

        # Assessment Engine
        self.engine_config = {
            'max_workers': 4,
            'notify_overdue_followups': True,
        }

        # HTTP API
        self.api_config = {
            'host': os.getenv('API_HOST', '0.0.0.0'),
            'port': int(os.getenv('API_PORT', '8000')),
            'allowed_origins': ['http://localhost:3000', 'http://localhost:5173'],
            'max_workers': 4,
        }

        # Logging
        self.logging_config = {
            'level': os.getenv('LOG_LEVEL', 'INFO'),
            'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        }

        override_file = os.getenv('HEALTH_CONFIG_FILE')
        if override_file:
            self.load_overrides(override_file)

    def get_section(self, section: str) -> Dict[str, Any]:
        """Get configuration for a section, e.g. 'trend' or 'risk'"""
        if section.lower() not in self.SECTIONS:
            raise ValueError(f"Unknown configuration section: {section}")
        return getattr(self, f'{section.lower()}_config')

    def update_config(self, section: str, updates: Dict[str, Any]) -> None:
        """Update a configuration section"""
        if hasattr(self, f'{section}_config'):
            config = getattr(self, f'{section}_config')
            config.update(updates)
        else:
            raise ValueError(f"Unknown configuration section: {section}")

    def load_overrides(self, path: Union[str, Path]) -> None:
        """Apply a YAML mapping of section -> updates on top of the defaults"""
        path = Path(path)
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Config file {path} must contain a mapping of sections")
        for section, updates in data.items():
            if not isinstance(updates, dict):
                raise ValueError(f"Section {section!r} in {path} must be a mapping")
            self.update_config(section, updates)
        logger.info("Loaded configuration overrides from %s", path)

    def copy(self) -> "Config":
        return copy.deepcopy(self)


def setup_logging(cfg: Optional[Config] = None) -> None:
    """Configure root logging from the logging section"""
    cfg = cfg or config
    logging.basicConfig(
        level=cfg.logging_config['level'],
        format=cfg.logging_config['format'],
    )


# Global configuration instance
config = Config()
