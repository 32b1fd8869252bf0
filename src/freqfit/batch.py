"""
Batch fitting of gridded samples with xarray.

Every series along the sample dimension of a DataArray (for example the
annual maxima at each grid cell) is fitted independently. Fitting runs in
the batch-robust mode: optimizer non-convergence yields the best point
found, and cells whose fit fails are set to NaN and counted in the log
instead of aborting the whole grid.
"""

from typing import Optional, Sequence, Union

import numpy as np
import xarray as xr

from .config import (
    DISTRIBUTION_DISPLAY_NAMES,
    MIN_SAMPLE_SIZE,
    DistributionType,
    EstimationMethod,
    get_logger,
    get_parameter_attributes,
)
from .distributions import create_distribution
from .estimation import as_method, estimate
from .exceptions import FreqFitError, ParameterError

# Module logger
_logger = get_logger(__name__)


def _as_distribution_type(distribution: Union[str, DistributionType]) -> DistributionType:
    if isinstance(distribution, DistributionType):
        return distribution
    return DistributionType.from_string(distribution)


def fit_dataarray(
    data: xr.DataArray,
    distribution: Union[str, DistributionType],
    method: Union[str, EstimationMethod] = EstimationMethod.LMOMENTS,
    sample_dim: str = 'time'
) -> xr.Dataset:
    """
    Fit a distribution to every series of a DataArray.

    NaN values in a series are dropped before fitting; series with fewer
    than 2 remaining values give NaN parameters.

    :param data: DataArray with a sample dimension, e.g. (time, lat, lon)
    :param distribution: distribution type (string or DistributionType)
    :param method: estimation method (string or EstimationMethod)
    :param sample_dim: name of the dimension holding the observations
    :return: Dataset with one variable per parameter over the remaining
        dimensions

    Example:
        >>> params = fit_dataarray(annual_max, 'gev', 'lmoments', sample_dim='year')
        >>> params['kappa'].plot()
    """
    dist_type = _as_distribution_type(distribution)
    method = as_method(method)
    if sample_dim not in data.dims:
        raise ParameterError(
            f"Sample dimension '{sample_dim}' not found in data dimensions {data.dims}"
        )

    proto = create_distribution(dist_type)
    proto.require_method(method)
    n_params = proto.number_of_parameters
    failures = []

    def fit_series(values: np.ndarray) -> np.ndarray:
        values = values[np.isfinite(values)]
        if len(values) < MIN_SAMPLE_SIZE:
            return np.full(n_params, np.nan)
        candidate = proto.clone()
        try:
            estimate(candidate, values, method, report_failure=False)
        except FreqFitError as e:
            failures.append(str(e))
            return np.full(n_params, np.nan)
        return candidate.parameters

    n_cells = int(data.size // data.sizes[sample_dim])
    _logger.info(
        f"Fitting {proto.display_name} by '{method.value}': "
        f"{n_cells:,} series along '{sample_dim}'"
    )

    fitted = xr.apply_ufunc(
        fit_series,
        data.astype(np.float64),
        input_core_dims=[[sample_dim]],
        output_core_dims=[['parameter']],
        vectorize=True,
        output_dtypes=[np.float64],
    )

    if failures:
        _logger.warning(
            f"{len(failures)} of {n_cells} series could not be fitted; "
            f"first error: {failures[0]}"
        )

    ds = xr.Dataset()
    for i, name in enumerate(proto.parameter_names):
        ds[name] = fitted.isel(parameter=i, drop=True)
        ds[name].attrs = get_parameter_attributes(dist_type, name, method)

    ds.attrs = {
        'title': f"{DISTRIBUTION_DISPLAY_NAMES.get(dist_type, dist_type.value)} distribution parameters",
        'distribution': dist_type.value,
        'estimation_method': method.value,
        'sample_dimension': sample_dim,
        'failed_fits': len(failures),
    }

    _logger.info("Batch fitting complete")
    return ds


def quantile_dataarray(
    params: xr.Dataset,
    probabilities: Sequence[float],
    distribution: Optional[Union[str, DistributionType]] = None
) -> xr.DataArray:
    """
    Quantiles of fitted distributions at every grid cell.

    :param params: Dataset returned by fit_dataarray()
    :param probabilities: non-exceedance probabilities in [0, 1]
    :param distribution: distribution type; read from the dataset's
        'distribution' attribute when omitted
    :return: DataArray with a 'probability' dimension added; NaN where the
        parameters are missing or invalid
    """
    if distribution is None:
        if 'distribution' not in params.attrs:
            raise ParameterError("Distribution type not given and not found in dataset attributes")
        distribution = params.attrs['distribution']
    dist_type = _as_distribution_type(distribution)

    proto = create_distribution(dist_type)
    probabilities = np.atleast_1d(np.asarray(probabilities, dtype=np.float64))
    stacked = xr.concat([params[name] for name in proto.parameter_names], dim='parameter')

    def cell_quantiles(theta: np.ndarray) -> np.ndarray:
        if not np.all(np.isfinite(theta)):
            return np.full(len(probabilities), np.nan)
        cell = proto.clone()
        cell.set_parameters(theta)
        if not cell.parameters_valid:
            return np.full(len(probabilities), np.nan)
        return np.array([cell.inverse_cdf(p) for p in probabilities])

    quantiles = xr.apply_ufunc(
        cell_quantiles,
        stacked,
        input_core_dims=[['parameter']],
        output_core_dims=[['probability']],
        vectorize=True,
        output_dtypes=[np.float64],
    )

    quantiles = quantiles.assign_coords(probability=probabilities)
    quantiles.name = 'quantile'
    quantiles.attrs = {
        'long_name': f"{proto.display_name} quantile",
        'distribution': dist_type.value,
    }
    return quantiles
