"""Chunkfile pool format driver.

Usage: format.sh FORMAT_BINARY PERCENT CHUNKFILE_SIZE POOL_DIR META_PATH
Example: format.sh /curvebs/tools/sbin/curve_format 90 16777216 \
    /curvebs/chunkserver/data/chunkfilepool /curvebs/chunkserver/data/chunkfilepool.meta
"""

FORMAT = """
#!/usr/bin/env bash

g_binary=$1
g_percent=$2
g_chunkfile_size=$3
g_chunkfile_pool_dir=$4
g_chunkfile_pool_meta_path=$5

mkdir -p ${g_chunkfile_pool_dir}

${g_binary} \\
    -allocatePercent=${g_percent} \\
    -fileSize=${g_chunkfile_size} \\
    -filePoolDir=${g_chunkfile_pool_dir} \\
    -filePoolMetaPath=${g_chunkfile_pool_meta_path} \\
    -fileSystemPath=${g_chunkfile_pool_dir}
"""
