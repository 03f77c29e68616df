from collections.abc import Iterable
from typing import Optional, Union

import pandas as pd
import scanpy as sc
from pandas.api.types import is_bool_dtype, is_numeric_dtype
from scanpy import logging as logg


def isiterable(x) -> bool:
    return not isinstance(x, str) and isinstance(x, Iterable)


def validate_layer(adata: sc.AnnData, layer: Optional[str] = None) -> Optional[str]:
    if layer is not None and layer not in adata.layers.keys():
        raise KeyError(f"Could not find layer {layer!r} in .layers.")
    return layer


def validate_var_keys(
    adata: sc.AnnData, keys: Union[str, Iterable[str]], caller: Optional[str] = None
) -> None:
    _keys = keys if isiterable(keys) else [keys]
    missing = [k for k in _keys if k not in adata.var.columns]
    if len(missing) > 0:
        hint = "" if caller is None else f" Run `{caller}` first."
        raise KeyError(f"Could not find {missing} in .var.columns.{hint}")
    return


def validate_mask_var(
    adata: sc.AnnData, mask_var: Optional[Union[str, Iterable[bool]]] = None
) -> Optional[pd.Series]:
    if mask_var is None:
        return None
    if isinstance(mask_var, str):
        validate_var_keys(adata, mask_var)
        mask = adata.var[mask_var]
    else:
        values = list(mask_var)
        assert len(values) == adata.n_vars, (
            f"Length of mask ({len(values)}) does not match number of genes ({adata.n_vars})."
        )
        mask = pd.Series(values, index=adata.var_names)
    if not is_bool_dtype(mask):
        raise TypeError(f"Mask {mask_var!r} is not boolean dtype.")
    return mask.fillna(False).astype(bool)


def validate_groupby(adata: sc.AnnData, groupby: Union[str, Iterable[str]]) -> None:
    _groupby = groupby if isiterable(groupby) else [groupby]
    for g in _groupby:
        if g not in adata.obs.keys():
            raise KeyError(f"Could not find key {g} in .obs.columns.")
        elif is_numeric_dtype(adata.obs[g]):
            raise TypeError(f"Key {g} in .obs.columns is numeric dtype.")
        elif not isinstance(adata.obs[g].dtype, pd.CategoricalDtype):
            logg.warning(f"Key {g} in .obs.columns is not 'category' dtype.")
    return


def validate_obsp_key(adata: sc.AnnData, key: str, caller: Optional[str] = None) -> None:
    if key not in adata.obsp.keys():
        hint = "" if caller is None else f" Run `{caller}` first."
        raise KeyError(f"Could not find {key!r} in .obsp.{hint}")
    return
