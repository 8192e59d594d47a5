# Ecological Forecast Challenge Configuration
# Settings for data sources, driver ensembles, modeling, and submission

import os

# Challenge Identity

PROJECT_ID = "neon4cast"
THEME = "aquatics"

# Model identifier used in the submission file name and model_id column
MODEL_ID = os.getenv("ECOFORECAST_MODEL_ID", "air2waterSat")

# Target Data Sources

# Daily aquatic targets (site_id, datetime, variable, observation)
TARGETS_URL = "https://data.ecoforecast.org/neon4cast-targets/aquatics/aquatics-targets.csv.gz"

# NEON field site metadata with per-theme inclusion flags
SITE_METADATA_URL = "https://raw.githubusercontent.com/eco4cast/neon4cast-targets/main/NEON_Field_Site_Metadata_20220412.csv"

# Column in the metadata table that flags sites belonging to THEME
SITE_METADATA_THEME_COLUMN = "aquatics"

# Weather Driver Sources (NOAA GEFS, parquet over S3)

S3_ENDPOINT = "data.ecoforecast.org"
S3_URL_STYLE = "path"

# Stage 3: historical "nowcast" driver series built from the first day of each GEFS run
NOAA_STAGE3_PATH = "s3://neon4cast-drivers/noaa/gefs-v12/stage3/parquet/*/*.parquet"

# Stage 2: 31-member GEFS forecasts, partitioned by reference date
NOAA_STAGE2_PATH = "s3://neon4cast-drivers/noaa/gefs-v12/stage2/parquet/0/{reference_date}/*.parquet"

# Forecast Configuration

# Target variable forecasted and the driver variable used as its predictor
TARGET_VARIABLE = "temperature"
DRIVER_VARIABLE = "air_temperature"

# Driver variables reported in Kelvin by GEFS and converted to Celsius
KELVIN_VARIABLES = ["air_temperature"]
KELVIN_OFFSET = 273.15

# Forecast horizon and ensemble size of the future driver
FORECAST_HORIZON_DAYS = 35
N_ENSEMBLE_MEMBERS = 30

# Historical window used to fit each site's regression
HISTORY_START_DATE = "2020-09-25"

# GEFS runs are published with a lag; drivers come from the day before the reference date
DRIVER_LAG_DAYS = 1

# Model Fitting

# Fewer paired (driver, target) rows than this and the site is skipped
MIN_TRAINING_SAMPLES = 2

# scikit-learn LinearRegression settings for the per-site driver regression
LINEAR_REGRESSION_PARAMS = {
    "fit_intercept": True,
}

# Parallel per-site fitting (joblib); sequential by default
ENABLE_PARALLEL = False
N_JOBS = 1

# Submission Format

FORECAST_FAMILY = "ensemble"
FORECAST_DURATION = "P1D"

SUBMISSION_COLUMNS = [
    "project_id",
    "model_id",
    "datetime",
    "reference_datetime",
    "duration",
    "site_id",
    "family",
    "parameter",
    "variable",
    "prediction",
]

# Upload endpoint for forecast files (file name is appended)
SUBMISSION_URL = "https://submit.ecoforecast.org/neon4cast-submissions"

FORECAST_OUTPUT_DIR = os.getenv("ECOFORECAST_OUTPUT_DIR", "./forecasts")

# Network

# Seconds before an HTTP request to a data source or the submission endpoint is abandoned
HTTP_TIMEOUT_SECONDS = 120

# Logging

LOG_DIR = "./logs"
