"""
Demonstration of the export formats of a PoMo fit.

Writes a small counts file and population tree to a temporary
directory, fits PoMo and shows the summary, JSON, dictionary and
DataFrame views of the result together with the model's state table.
"""

import tempfile
from pathlib import Path

from pomoml import PoMoData, PoMoModel, fit_pomo, summarize_counts

COUNTS = """\
COUNTSFILE  NPOP 3   NSITES 8
CHROM  POS  Sheep     Goat      Cow
1      1    0,0,10,0  0,0,9,1   0,0,10,0
1      2    5,5,0,0   10,0,0,0  8,2,0,0
1      3    10,0,0,0  10,0,0,0  10,0,0,0
1      4    0,10,0,0  0,10,0,0  0,9,0,1
1      5    0,0,0,10  0,0,0,10  0,0,0,10
1      6    10,0,0,0  9,0,1,0   10,0,0,0
1      7    0,0,0,10  0,2,0,8   0,0,0,10
1      8    0,10,0,0  0,10,0,0  0,10,0,0
"""

TREE = "((Sheep:0.05,Goat:0.05):0.02,Cow:0.08);\n"


def main():
    with tempfile.TemporaryDirectory() as tmp:
        counts_file = Path(tmp) / "example.cf"
        tree_file = Path(tmp) / "example.nwk"
        counts_file.write_text(COUNTS)
        tree_file.write_text(TREE)

        print("Empirical quantities of the data")
        print("-" * 80)
        print(summarize_counts(counts_file, N=5).summary())

        print("\nFitting HKY+P+N5...")
        result = fit_pomo(counts_file, tree_file, model="HKY", N=5, maxiter=50)

        print("\n" + "=" * 80)
        print("EXPORT FORMAT DEMONSTRATIONS")
        print("=" * 80)

        # 1. Formatted summary (default)
        print("\n1. FORMATTED SUMMARY (console output)")
        print("-" * 80)
        print(result.summary())

        # 2. Model report
        print("\n2. MODEL REPORT")
        print("-" * 80)
        print(result.report)

        # 3. JSON export
        print("\n3. JSON EXPORT")
        print("-" * 80)
        json_str = result.to_json()
        print(json_str[:500] + "...")
        print("\n# Save to file:")
        print("result.to_json('hky_pomo.json')")

        # 4. Dictionary export
        print("\n4. DICTIONARY EXPORT (for programmatic access)")
        print("-" * 80)
        result_dict = result.to_dict()
        print(f"Keys: {list(result_dict.keys())}")
        print(f"theta: {result_dict['theta']:.6g}")

        # 5. Pandas DataFrame
        print("\n5. PANDAS DATAFRAME")
        print("-" * 80)
        print(result.to_dataframe().T)

        # 6. Stationary frequencies of all PoMo states
        print("\n6. STATE TABLE")
        print("-" * 80)
        data = PoMoData.from_counts_file(counts_file, virtual_pop_size=5)
        model = PoMoModel(data, "HKY", theta="EMP")
        print(model.state_table().to_string(index=False))


if __name__ == "__main__":
    main()
