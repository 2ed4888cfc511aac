from utils.formatting import to_number


def calculate_parcel_totals(parcels):
    # Missing or unparseable areas count as zero
    totals = {
        "total_superficie_parcela": 0,
        "total_superficie_vinculada": 0,
    }

    for p in parcels:
        totals["total_superficie_parcela"] += to_number(p.superficie_parcela) or 0
        totals["total_superficie_vinculada"] += to_number(p.superficie_vinculada) or 0

    return totals


def calculate_project_summary(record):
    """
    Returns row counts and area/cost totals for a ProjectRecord
    """
    params = record.parametros_urbanisticos

    stats = {
        "occupied_sqm": 0.0,
        "built_sqm": 0.0,
        "transformation_cost": 0.0,
        "total_cost": 0.0,
    }

    # Constructions and installations carry the full set of parameters
    for row in list(params.construcciones) + list(params.instalaciones):
        stats["occupied_sqm"] += to_number(row.superficie_ocupada) or 0
        stats["built_sqm"] += to_number(row.superficie_construida) or 0
        stats["transformation_cost"] += to_number(row.coste_transformacion) or 0
        stats["total_cost"] += to_number(row.coste_total) or 0

    # Roadways only occupy land and cost transformation
    for vial in params.viales:
        stats["occupied_sqm"] += to_number(vial.superficie_ocupada) or 0
        stats["transformation_cost"] += to_number(vial.coste_transformacion) or 0

    parcel_totals = calculate_parcel_totals(record.parcelas_afectadas)

    return {
        "row_counts": {
            "parcelas_afectadas": len(record.parcelas_afectadas),
            "construcciones": len(params.construcciones),
            "instalaciones": len(params.instalaciones),
            "viales": len(params.viales),
            "propietarios_colindantes": len(record.propietarios_colindantes),
        },
        "parcel_totals": {
            "superficie_parcela_sqm": parcel_totals["total_superficie_parcela"],
            "superficie_vinculada_sqm": parcel_totals["total_superficie_vinculada"],
        },
        "urban_parameters": {
            "occupied_sqm": round(stats["occupied_sqm"], 2),
            "built_sqm": round(stats["built_sqm"], 2),
            "transformation_cost": round(stats["transformation_cost"], 2),
            "total_cost": round(stats["total_cost"], 2),
        },
    }
